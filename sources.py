"""
Registro de Fontes Judiciais
============================

Único ponto onde os adapters concretos são instanciados. A busca consolidada
e o orquestrador de sync recebem as instâncias por parâmetro.
"""

from typing import List, Optional

from adapter_base import SourceAdapter
from config import Settings, settings as default_settings
from datajud_adapter import DataJudAdapter
from esaj_adapter import EsajBrowserAdapter
from jusbrasil_adapter import JusBrasilAdapter
from logger import logger
from mock_adapter import MockAdapter


def build_adapters(settings: Optional[Settings] = None) -> List[SourceAdapter]:
    """
    Adapters da busca consolidada, em ordem de prioridade.

    A ordem define o "primeiro visto" na consolidação: a fonte oficial vem primeiro.
    """
    settings = settings or default_settings
    if not settings.USE_REAL_ADAPTERS:
        logger.info("Usando MockAdapter (dados fictícios)")
        return [MockAdapter()]

    adapters: List[SourceAdapter] = [
        DataJudAdapter(),
        JusBrasilAdapter(),
        EsajBrowserAdapter(),
    ]
    logger.info(f"📊 {len(adapters)} fontes judiciais inicializadas: {[a.name for a in adapters]}")
    return adapters


def build_official_adapter(settings: Optional[Settings] = None) -> SourceAdapter:
    """Fonte única do sync incremental."""
    settings = settings or default_settings
    if not settings.USE_REAL_ADAPTERS:
        return MockAdapter()
    return DataJudAdapter()
