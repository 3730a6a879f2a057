"""
tests/helpers.py

Fakes compartilhados: armazenamento em memória, adapters roteirizados e
construtores de registros brutos / casos canônicos.
"""

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from adapter_base import SourceAdapter
from schemas import CanonicalCase, CodeName, Parties, Party, ScrapedMovement, ScrapedParty, ScrapedRecord
from storage import DocumentStore, StoredDocument

TJSP_NUMBER = "0001234-56.2024.8.26.0100"
TJSP_ID = "00012345620248260100"
TJMG_NUMBER = "5000001-11.2023.8.13.0024"
TJMG_ID = "50000011120238130024"


class MemoryDocumentStore(DocumentStore):
    """DocumentStore em memória com contadores e falhas programáveis."""

    def __init__(self):
        self.docs: Dict[tuple, Dict[str, Any]] = {}
        self.writes: List[tuple] = []
        self.reads = 0
        self.fail_writes_for = set()
        self.get_errors: List[Exception] = []

    def get(self, collection: str, key: str) -> StoredDocument:
        self.reads += 1
        if self.get_errors:
            raise self.get_errors.pop(0)
        fields = self.docs.get((collection, key))
        if fields is None:
            return StoredDocument(exists=False)
        return StoredDocument(exists=True, fields=copy.deepcopy(fields))

    def set_merge(self, collection: str, key: str, fields: Dict[str, Any]) -> None:
        if key in self.fail_writes_for:
            raise RuntimeError(f"falha de escrita simulada: {key}")
        merged = dict(self.docs.get((collection, key), {}))
        merged.update(copy.deepcopy(fields))
        self.docs[(collection, key)] = merged
        self.writes.append((collection, key))

    def writes_to(self, collection: str) -> int:
        return sum(1 for c, _ in self.writes if c == collection)


class FakeAdapter(SourceAdapter):
    """Adapter roteirizado: devolve `records`, levanta `error` ou espera `delay`."""

    def __init__(self, name: str, records=None, error: Optional[Exception] = None, pages=None, delay: float = 0):
        self.name = name
        self.records = list(records or [])
        self.error = error
        self.pages = list(pages or [])
        self.delay = delay
        self.calls = 0
        self.page_calls: List[int] = []
        self.closed = False

    async def search(self, query, options=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.records)

    async def fetch_updates_page(self, tribunal, page, page_size):
        self.calls += 1
        self.page_calls.append(page)
        if self.error is not None:
            raise self.error
        if page < len(self.pages):
            return copy.deepcopy(self.pages[page])
        return []

    async def aclose(self):
        self.closed = True


class SleepRecorder:
    """Substitui asyncio.sleep / time.sleep registrando os atrasos pedidos."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)

    def sync(self, seconds: float):
        self.calls.append(seconds)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def scraped_record(
    numero: Optional[str] = TJSP_NUMBER,
    source_system: str = "mock",
    classe: Optional[str] = "Procedimento Comum Cível",
    assunto: Optional[str] = "Indenização por Dano Moral",
    data_distribuicao: Optional[str] = "15/01/2024",
    partes=None,
    movimento: Optional[str] = "Conclusos para despacho",
    movimento_data: Optional[str] = "01/03/2024",
    juiz: Optional[str] = None,
) -> ScrapedRecord:
    if partes is None:
        partes = [
            ScrapedParty(nome="Maria da Silva", papel="Requerente"),
            ScrapedParty(nome="Banco Exemplo S.A.", papel="Requerido"),
        ]
    return ScrapedRecord(
        source_system=source_system,
        numero=numero,
        classe=classe,
        assunto=assunto,
        data_distribuicao=data_distribuicao,
        partes=partes,
        juiz=juiz,
        ultima_movimentacao=ScrapedMovement(data=movimento_data, descricao=movimento) if movimento else None,
    )


def make_case(
    process_id: str = TJSP_ID,
    source_system: str = "datajud",
    classification: str = "Procedimento Comum Cível",
    subject: str = "Indenização por Dano Moral",
    filing_date: Optional[datetime] = datetime(2024, 1, 15, tzinfo=timezone.utc),
    claimants=("MARIA DA SILVA",),
    respondents=("BANCO EXEMPLO S.A.",),
    **overrides
) -> CanonicalCase:
    data = dict(
        process_id=process_id,
        case_number=process_id,
        tribunal="TJSP",
        classification=CodeName(name=classification),
        subject=CodeName(name=subject),
        filing_date=filing_date,
        parties=Parties(
            claimant=[Party(name=n) for n in claimants],
            respondent=[Party(name=n) for n in respondents],
        ),
        source_system=source_system,
        sources=[source_system],
    )
    data.update(overrides)
    return CanonicalCase(**data)
