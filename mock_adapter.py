from datetime import date, timedelta
import hashlib
import random
from typing import List, Optional

from adapter_base import SourceAdapter
from schemas import ScrapedMovement, ScrapedParty, ScrapedRecord, SearchOptions

CLASSES = [
    "Procedimento Comum Cível", "Execução de Título Extrajudicial", "Reclamação Trabalhista",
    "Mandado de Segurança Cível", "Procedimento do Juizado Especial Cível", "Cumprimento de Sentença"
]
ASSUNTOS = [
    "Indenização por Dano Moral", "Fornecimento de Medicamentos", "Rescisão do contrato",
    "Cobrança de Aluguéis", "Horas Extras", "Obrigação de Fazer / Não Fazer"
]
MOVIMENTOS = [
    "Conclusos para despacho", "Juntada de Petição", "Sentença - Julgado procedente",
    "Arquivado Definitivamente", "Audiência de conciliação designada", "Expedição de mandado"
]
REUS = [
    "ESTADO DE SÃO PAULO", "MUNICÍPIO DE SÃO PAULO", "BANCO DO BRASIL S.A.",
    "TELEFÔNICA BRASIL S.A.", "INSTITUTO NACIONAL DO SEGURO SOCIAL"
]

class MockAdapter(SourceAdapter):
    """Adapter MOCK para desenvolvimento.

    Gera processos determinísticos a partir da consulta (mesma consulta -> mesmos processos).
    Em produção: USE_REAL_ADAPTERS=true troca pelos adapters reais.
    """
    name = "mock"

    def __init__(self, n: int = 5, tribunal_segment: str = "826"):
        self.n = n
        self.tribunal_segment = tribunal_segment

    def _generate(self, seed_text: str, count: int) -> List[ScrapedRecord]:
        seed = int(hashlib.sha256(seed_text.encode()).hexdigest()[:8], 16)
        rng = random.Random(seed)
        base_day = date(2024, 1, 1)
        out = []
        for i in range(count):
            sequencial = rng.randint(1, 9_999_999)
            ano = rng.choice([2021, 2022, 2023, 2024])
            numero = f"{sequencial:07d}-{rng.randint(10, 99)}.{ano}.{self.tribunal_segment[0]}.{self.tribunal_segment[1:]}.{rng.randint(1, 999):04d}"
            distribuicao = base_day + timedelta(days=rng.randint(0, 600))
            movimento_data = distribuicao + timedelta(days=rng.randint(1, 120))
            out.append(ScrapedRecord(
                source_system=self.name,
                numero=numero,
                classe=rng.choice(CLASSES),
                assunto=rng.choice(ASSUNTOS),
                data_distribuicao=distribuicao.strftime("%d/%m/%Y"),
                partes=[
                    ScrapedParty(nome=seed_text.split("|")[-1], papel="Requerente"),
                    ScrapedParty(nome=rng.choice(REUS), papel="Requerido"),
                ],
                valor=f"R$ {rng.randint(1_000, 200_000)},00",
                instancia=1,
                ultima_movimentacao=ScrapedMovement(
                    data=movimento_data.strftime("%d/%m/%Y"),
                    descricao=rng.choice(MOVIMENTOS)
                ),
                url=f"https://mock.local/processos/{i}"
            ))
        return out

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[ScrapedRecord]:
        query = (query or "").strip()
        if not query:
            return []
        return self._generate(query.upper(), self.n)

    async def fetch_updates_page(self, tribunal: str, page: int, page_size: int) -> List[ScrapedRecord]:
        # Uma única página de dados fictícios por tribunal
        if page > 0:
            return []
        return self._generate(f"sync|{tribunal}|PARTE MOCK", min(self.n, page_size))
