from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Optional, List, Any, Dict, Literal, Union
from datetime import datetime

UNCLASSIFIED = "Sem classificação"
UNKNOWN_TRIBUNAL = "DESCONHECIDO"

# ==================== REGISTROS BRUTOS (por fonte) ====================

class DataJudRecord(BaseModel):
    """Formato do `_source` devolvido pela API pública do DataJud (CNJ)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source_system: Literal["datajud"] = "datajud"
    numero_processo: Optional[str] = Field(None, alias="numeroProcesso")
    classe: Optional[Dict[str, Any]] = None
    assuntos: List[Any] = Field(default_factory=list)
    data_ajuizamento: Optional[str] = Field(None, alias="dataAjuizamento")
    data_hora_ultima_atualizacao: Optional[str] = Field(None, alias="dataHoraUltimaAtualizacao")
    partes: List[Dict[str, Any]] = Field(default_factory=list)
    orgao_julgador: Optional[Dict[str, Any]] = Field(None, alias="orgaoJulgador")
    movimentos: List[Dict[str, Any]] = Field(default_factory=list)
    valor_causa: Optional[Any] = Field(None, alias="valorCausa")
    grau: Optional[str] = None

class ScrapedParty(BaseModel):
    nome: Optional[str] = None
    papel: Optional[str] = None
    documento: Optional[str] = None
    tipo_pessoa: Optional[str] = None

class ScrapedMovement(BaseModel):
    data: Optional[str] = None
    descricao: Optional[str] = None
    codigo: Optional[str] = None

class ScrapedRecord(BaseModel):
    """Formato achatado produzido pelos clientes de scraping (HTML / navegador)."""
    model_config = ConfigDict(extra="ignore")

    source_system: Literal["jusbrasil", "esaj", "mock"]
    numero: Optional[str] = None
    classe: Optional[str] = None
    assunto: Optional[str] = None
    data_distribuicao: Optional[str] = None
    ultima_atualizacao: Optional[str] = None
    partes: List[ScrapedParty] = Field(default_factory=list)
    juiz: Optional[str] = None
    valor: Optional[Any] = None
    instancia: Optional[Any] = None
    ultima_movimentacao: Optional[ScrapedMovement] = None
    url: Optional[str] = None

RawRecord = Annotated[Union[DataJudRecord, ScrapedRecord], Field(discriminator="source_system")]

class SearchOptions(BaseModel):
    max_pages: int = 3
    page_size: int = 10
    tribunals: List[str] = Field(default_factory=list)

# ==================== CASO CANÔNICO ====================

class CaseStatus(str, Enum):
    ACTIVE = "active"
    CONCLUDED = "concluded"
    ARCHIVED = "archived"

class CodeName(BaseModel):
    code: Optional[str] = None
    name: str = UNCLASSIFIED

class Party(BaseModel):
    name: str
    document_id: Optional[str] = None
    person_type: str = "DESCONHECIDO"

class Parties(BaseModel):
    claimant: List[Party] = Field(default_factory=list)
    respondent: List[Party] = Field(default_factory=list)
    intervenor: List[Party] = Field(default_factory=list)
    other: List[Party] = Field(default_factory=list)

class Movement(BaseModel):
    date: Optional[datetime] = None
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None

class CanonicalCase(BaseModel):
    process_id: str
    process_id_valid: bool = True
    case_number: str
    tribunal: str = UNKNOWN_TRIBUNAL
    classification: CodeName = Field(default_factory=CodeName)
    subject: CodeName = Field(default_factory=CodeName)
    filing_date: Optional[datetime] = None
    last_update_date: Optional[datetime] = None
    parties: Parties = Field(default_factory=Parties)
    judge: Optional[str] = None
    claim_value: float = 0.0
    instance_level: int = 1
    status: CaseStatus = CaseStatus.ACTIVE
    last_movement: Optional[Movement] = None
    content_hash: Optional[str] = None
    sync_status: str = "synced"
    synced_at: Optional[datetime] = None
    source_system: str
    sources: List[str] = Field(default_factory=list)

# ==================== CONSOLIDAÇÃO ====================

class SourceResult(BaseModel):
    count: int = 0
    records: List[CanonicalCase] = Field(default_factory=list)
    error: Optional[str] = None
    rejected: int = 0
    elapsed_ms: int = 0

class Conflict(BaseModel):
    process_id: str
    field: str
    source_a: str
    value_a: Any = None
    source_b: str
    value_b: Any = None

class ConsolidationResult(BaseModel):
    unique_cases: List[CanonicalCase] = Field(default_factory=list)
    duplicate_count: int = 0
    conflicts: List[Conflict] = Field(default_factory=list)

class ConsolidatedBlock(BaseModel):
    total_cases: int = 0
    unique_cases: List[CanonicalCase] = Field(default_factory=list)
    duplicates_found: int = 0
    conflicts: List[Conflict] = Field(default_factory=list)

class SearchMetadata(BaseModel):
    execution_time_ms: int = 0
    sources_queried: int = 0
    sources_successful: int = 0
    execution_mode: Literal["PARALLEL", "CACHE"] = "PARALLEL"
    from_cache: bool = False

class ConsolidatedSearchResult(BaseModel):
    search_id: str
    query: str
    timestamp: datetime
    sources: Dict[str, SourceResult] = Field(default_factory=dict)
    consolidated: ConsolidatedBlock = Field(default_factory=ConsolidatedBlock)
    metadata: SearchMetadata = Field(default_factory=SearchMetadata)

class SearchHistoryItem(BaseModel):
    search_id: str
    query: str
    timestamp: datetime
    total_found: int
    execution_time_ms: int
    from_cache: bool = False

# ==================== ESCRITA / SYNC / COTA ====================

class WriteResult(BaseModel):
    written: bool
    cost: int
    reason: Literal["new", "updated", "no_changes"]

class WriteFailure(BaseModel):
    process_id: Optional[str] = None
    error: str

class BatchWriteResult(BaseModel):
    write_cost: int = 0
    new: int = 0
    updated: int = 0
    skipped: int = 0
    deferred: int = 0
    failures: List[WriteFailure] = Field(default_factory=list)
    total_processed: int = 0

class SyncStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    NO_DATA = "no_data"
    ERROR = "error"

class SyncLogEntry(BaseModel):
    log_date: str
    tribunal: str
    status: SyncStatus = SyncStatus.PENDING
    started_at: datetime
    finished_at: Optional[datetime] = None
    total_fetched: int = 0
    total_processed: int = 0
    total_written: int = 0
    new: int = 0
    updated: int = 0
    skipped: int = 0
    deferred: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)

class QuotaLevel(str, Enum):
    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    EXCEEDED = "EXCEEDED"
    ERROR = "ERROR"

class QuotaStatus(BaseModel):
    status: QuotaLevel
    writes_used: int
    writes_remaining: int
    writes_percent: int
    writes_budget: int
    error: Optional[str] = None

# ==================== API ====================

class OperatorLogin(BaseModel):
    username: str
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in_minutes: int
