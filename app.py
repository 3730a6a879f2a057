from fastapi import FastAPI, Depends, HTTPException, Path, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from typing import List
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

import schemas
from adapter_base import SourceAdapter
from auth import OPERATOR_ROLE, authenticate_operator, create_access_token, get_current_operator
from config import settings
from consolidator import ConsolidatedSearch
from quota import QuotaTracker
from resilience import ResilienceExecutor
from search_cache import SearchCache, SearchHistory
from sources import build_adapters, build_official_adapter
from storage import CASES_COLLECTION, DocumentStore
from tasks import build_default_store, get_sync_log, get_sync_stats, run_tribunal_sync
from tribunals import DATAJUD_ALIASES
from utils import only_digits

# Criar tabelas
_store = build_default_store()

# Inicializar app
app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description="""
    ## JudSync - API de Processos Judiciais Consolidados

    Agrega processos de várias fontes (DataJud, JusBrasil, e-SAJ), consolida
    duplicatas e grava apenas o que mudou, respeitando a cota diária de escrita.

    ### Fluxo Principal:
    1. **Busca**: `GET /search?name=` consulta todas as fontes em paralelo
    2. **Processos**: `GET /cases/{process_id}` lê o processo sincronizado
    3. **Sync**: `POST /sync/{tribunal}` dispara o sync incremental (operador)
    4. **Cota**: `GET /quota` e `GET /sync/logs/{data}` acompanham o consumo

    ### Autenticação:
    Apenas o sync manual exige token de operador (`POST /auth/token`).

    **Header:** `Authorization: Bearer {seu_token_aqui}`
    """
)

# Rate Limiting
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_search_service = ConsolidatedSearch(
    build_adapters(),
    executor=ResilienceExecutor(),
    cache=SearchCache(),
    history=SearchHistory()
)

def get_store() -> DocumentStore:
    return _store

def get_search_service() -> ConsolidatedSearch:
    return _search_service

def get_official_adapter() -> SourceAdapter:
    return build_official_adapter()

# ==================== ENDPOINTS PÚBLICOS ====================

@app.get("/health", tags=["Sistema"])
def health():
    """Verifica se a API está funcionando"""
    return {"status": "ok", "version": settings.API_VERSION}

# ==================== AUTENTICAÇÃO ====================

@app.post("/auth/token", response_model=schemas.TokenResponse, tags=["Autenticação"])
@limiter.limit("5/minute")
def login_operator(request: Request, data: schemas.OperatorLogin):
    """Login do operador do sync manual"""
    if not authenticate_operator(data.username, data.password):
        raise HTTPException(status_code=401, detail="Usuário ou senha inválidos")

    access_token = create_access_token(data={"sub": data.username, "role": OPERATOR_ROLE})
    return schemas.TokenResponse(
        access_token=access_token,
        expires_in_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )

# ==================== BUSCA CONSOLIDADA ====================

@app.get("/search", response_model=schemas.ConsolidatedSearchResult, tags=["Busca"])
@limiter.limit(settings.SEARCH_RATE_LIMIT)
async def search_by_name(
    request: Request,
    name: str = Query(..., min_length=3, description="Nome da parte ou número do processo"),
    use_cache: bool = Query(True, description="Usar resultado em cache (7 dias)"),
    service: ConsolidatedSearch = Depends(get_search_service)
):
    """
    Busca em todas as fontes simultaneamente.

    Fontes com erro aparecem em `sources.<fonte>.error`; a resposta é sempre
    um resultado estruturado, mesmo com todas as fontes fora do ar.

    Exemplo:
        GET /search?name=Maria%20da%20Silva
    """
    return await service.search_by_name(name, use_cache=use_cache)

@app.get("/search/history", response_model=List[schemas.SearchHistoryItem], tags=["Busca"])
def search_history(
    limit: int = Query(10, ge=1, le=100),
    service: ConsolidatedSearch = Depends(get_search_service)
):
    """Últimas buscas realizadas (memória do processo)"""
    return service.get_search_history(limit)

# ==================== PROCESSOS ====================

@app.get("/cases/{process_id}", tags=["Processos"])
def get_case(process_id: str, store: DocumentStore = Depends(get_store)):
    """Processo sincronizado, pelo número CNJ (com ou sem pontuação)"""
    doc = store.get(CASES_COLLECTION, only_digits(process_id))
    if not doc.exists:
        raise HTTPException(status_code=404, detail="Processo não encontrado")
    return doc.fields

# ==================== COTA E SYNC ====================

@app.get("/quota", response_model=schemas.QuotaStatus, tags=["Sync"])
def get_quota(store: DocumentStore = Depends(get_store)):
    """Consumo de escritas do dia (HEALTHY / WARNING / EXCEEDED / ERROR)"""
    return QuotaTracker(store).check_quota()

@app.get("/sync/logs/{log_date}", tags=["Sync"])
def get_sync_logs(
    log_date: str = Path(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="Data no formato YYYY-MM-DD"),
    store: DocumentStore = Depends(get_store)
):
    """
    Log diário de sincronização.

    Retorna o mapa tribunal -> contadores e os totais do dia.

    Exemplo:
        GET /sync/logs/2025-01-31
    """
    return {
        "log_date": log_date,
        "tribunals": get_sync_log(store, log_date),
        "stats": get_sync_stats(store, log_date)
    }

@app.post("/sync/{tribunal}", response_model=schemas.SyncLogEntry, tags=["Sync"])
async def run_sync(
    tribunal: str,
    operator: str = Depends(get_current_operator),
    store: DocumentStore = Depends(get_store),
    adapter: SourceAdapter = Depends(get_official_adapter)
):
    """
    Executar sync incremental de um tribunal (apenas operadores).

    O mesmo fluxo do cron: verifica a cota, busca as atualizações na fonte
    oficial e grava apenas os processos que mudaram.

    Exemplo:
        POST /sync/TJSP
    """
    tribunal = tribunal.upper()
    if tribunal not in DATAJUD_ALIASES:
        raise HTTPException(status_code=404, detail=f"Tribunal desconhecido: {tribunal}")

    try:
        return await run_tribunal_sync(
            tribunal,
            adapter=adapter,
            executor=ResilienceExecutor(),
            store=store,
            quota_tracker=QuotaTracker(store)
        )
    finally:
        await adapter.aclose()
