"""
Normalização de Registros Judiciais
===================================

Converte registros brutos (DataJud, scraping, navegador) no schema canônico
CanonicalCase. Transformação determinística e sem efeitos colaterais:

- número CNJ: só dígitos; 20 dígitos é válido, o resto é mantido e sinalizado
- tribunal: resolvido pelo segmento J+TR do número
- datas: ISO-8601, dd/mm/aaaa ou aaaammddHHMMSS; inválidas viram None (nunca "agora")
- partes: agrupadas por polo, nomes em maiúsculas, documentos só com dígitos
- status: inferido da última movimentação
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import TypeAdapter

from errors import NormalizationError
from logger import logger
from schemas import (
    UNCLASSIFIED,
    CanonicalCase,
    CaseStatus,
    CodeName,
    DataJudRecord,
    Movement,
    Parties,
    Party,
    RawRecord,
    ScrapedRecord,
)
from tribunals import resolve_tribunal
from utils import normalize_string, only_digits, utcnow

PROCESS_ID_LENGTH = 20

_raw_record_adapter = TypeAdapter(RawRecord)

# ==================== NÚMERO DO PROCESSO ====================

def canonical_process_id(numero: Optional[str]) -> Tuple[str, bool]:
    """Retorna (dígitos, válido). Números curtos/corrompidos não são rejeitados."""
    digits = only_digits(numero)
    return digits, len(digits) == PROCESS_ID_LENGTH


def format_case_number(process_id: str) -> str:
    """00000000020248260100 -> 0000000-02.2024.8.26.0100"""
    if len(process_id) != PROCESS_ID_LENGTH:
        return process_id
    return (
        f"{process_id[0:7]}-{process_id[7:9]}.{process_id[9:13]}."
        f"{process_id[13:14]}.{process_id[14:16]}.{process_id[16:20]}"
    )

# ==================== DATAS ====================

_DATE_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y%m%d%H%M%S",
    "%Y%m%d",
)


def parse_date(value: Any) -> Optional[datetime]:
    """Converte para datetime com fuso (UTC quando ausente). Inválido -> None."""
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

# ==================== PARTES ====================

_ROLE_CODES = {
    "at": "claimant",
    "pa": "respondent",
    "tc": "intervenor",
    "fl": "other",
    "re": "respondent",
    "reu": "respondent",
}

_ROLE_STEMS = (
    ("claimant", (
        "autor", "requerent", "exequent", "reclamant", "impetrant", "apelant",
        "agravant", "embargant", "recorrent", "demandant", "promovent", "polo ativo", "ativo",
    )),
    ("respondent", (
        "reu", "requerid", "executad", "reclamad", "impetrad", "apelad", "agravad",
        "embargad", "recorrid", "demandad", "promovid", "polo passivo", "passivo",
    )),
    ("intervenor", (
        "assistent", "terceir", "interessad", "intervenient", "amicus", "litisconsort", "opoent",
    )),
)


def classify_role(label: Any) -> str:
    """Agrupa o rótulo livre do polo em claimant/respondent/intervenor/other."""
    normalized = normalize_string(str(label)) if label is not None else None
    if not normalized:
        return "other"
    if normalized in _ROLE_CODES:
        return _ROLE_CODES[normalized]
    for role, stems in _ROLE_STEMS:
        if any(normalized.startswith(stem) for stem in stems):
            return role
    return "other"


def sanitize_name(name: Any) -> Optional[str]:
    if name is None or name == "":
        return None
    cleaned = re.sub(r"\s+", " ", str(name)).strip().upper()
    return cleaned or None


def _person_type(document: Optional[str], declared: Any) -> str:
    if declared:
        return str(declared).strip().upper()
    if document and len(document) == 11:
        return "FISICA"
    if document and len(document) == 14:
        return "JURIDICA"
    return "DESCONHECIDO"


def group_parties(entries: Iterable[Tuple[Optional[str], Optional[str], Optional[str], Optional[str]]]) -> Parties:
    """entries: (nome, polo, documento, tipo_pessoa)"""
    grouped: Dict[str, List[Party]] = {"claimant": [], "respondent": [], "intervenor": [], "other": []}
    for nome, polo, documento, tipo_pessoa in entries:
        name = sanitize_name(nome)
        if not name:
            continue
        document_id = only_digits(documento) or None
        grouped[classify_role(polo)].append(Party(
            name=name,
            document_id=document_id,
            person_type=_person_type(document_id, tipo_pessoa)
        ))
    return Parties(**grouped)

# ==================== STATUS / CLASSIFICAÇÃO ====================

_CONCLUDED_TERMS = ("sentenca", "julgad", "acordao", "transito em julgado", "procedente", "homologad")
_ARCHIVED_TERMS = ("arquivad", "arquivamento", "extincao", "extint", "cancelad", "baixa definitiva", "desistencia")
_ARCHIVED_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(t) for t in _ARCHIVED_TERMS) + ")")


def infer_status(movement_text: Optional[str]) -> CaseStatus:
    text = normalize_string(movement_text) or ""
    if any(term in text for term in _CONCLUDED_TERMS):
        return CaseStatus.CONCLUDED
    if _ARCHIVED_PATTERN.search(text):
        return CaseStatus.ARCHIVED
    return CaseStatus.ACTIVE


def code_name(code: Any = None, name: Any = None) -> CodeName:
    clean_name = str(name).strip() if name is not None else ""
    return CodeName(
        code=str(code) if code not in (None, "") else None,
        name=clean_name or UNCLASSIFIED
    )


def parse_money(value: Any) -> float:
    """Aceita números e strings no formato brasileiro (R$ 1.234,56)."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = re.sub(r"[^0-9,.\-]", "", str(value))
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_instance(value: Any) -> int:
    if isinstance(value, int):
        return value
    match = re.search(r"\d+", str(value or ""))
    return int(match.group(0)) if match else 1

# ==================== VARIANTES ====================

def _base_fields(numero: Optional[str], source: str) -> Dict[str, Any]:
    if not numero or not only_digits(numero):
        raise NormalizationError(f"Registro de {source} sem número de processo")

    process_id, valid = canonical_process_id(numero)
    if not valid:
        logger.warning(f"⚠️ Número de processo inválido ({len(process_id)} dígitos): {process_id}")

    return {
        "process_id": process_id,
        "process_id_valid": valid,
        "case_number": format_case_number(process_id),
        "tribunal": resolve_tribunal(process_id),
    }


def _latest_movement(movimentos: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not movimentos:
        return None
    dated = [(parse_date(m.get("dataHora")), m) for m in movimentos]
    if all(d is not None for d, _ in dated):
        return max(dated, key=lambda pair: pair[0])[1]
    return movimentos[0]


def _first_subject(assuntos: List[Any]) -> Optional[Dict[str, Any]]:
    for item in assuntos:
        if isinstance(item, list):
            item = next((i for i in item if isinstance(i, dict)), None)
        if isinstance(item, dict):
            return item
    return None


def normalize_datajud(record: DataJudRecord, now: Optional[datetime] = None) -> CanonicalCase:
    fields = _base_fields(record.numero_processo, record.source_system)

    classe = record.classe or {}
    assunto = _first_subject(record.assuntos) or {}

    movimento = _latest_movement(record.movimentos)
    last_movement = None
    if movimento:
        complementos = movimento.get("complementosTabelados") or []
        descricao = movimento.get("descricao") or ", ".join(
            c.get("nome") or c.get("descricao") or "" for c in complementos if isinstance(c, dict)
        ) or None
        last_movement = Movement(
            date=parse_date(movimento.get("dataHora")),
            name=movimento.get("nome"),
            code=str(movimento["codigo"]) if movimento.get("codigo") is not None else None,
            description=descricao
        )

    movement_text = " ".join(filter(None, [
        last_movement.name if last_movement else None,
        last_movement.description if last_movement else None,
    ]))

    return CanonicalCase(
        **fields,
        classification=code_name(classe.get("codigo"), classe.get("nome")),
        subject=code_name(assunto.get("codigo"), assunto.get("nome")),
        filing_date=parse_date(record.data_ajuizamento),
        last_update_date=parse_date(record.data_hora_ultima_atualizacao),
        parties=group_parties(
            (p.get("nome"), p.get("polo"), p.get("documento"), p.get("tipoPessoa"))
            for p in record.partes
        ),
        judge=(record.orgao_julgador or {}).get("nome"),
        claim_value=parse_money(record.valor_causa),
        instance_level=parse_instance(record.grau),
        status=infer_status(movement_text),
        last_movement=last_movement,
        synced_at=now or utcnow(),
        source_system=record.source_system,
        sources=[record.source_system]
    )


def normalize_scraped(record: ScrapedRecord, now: Optional[datetime] = None) -> CanonicalCase:
    fields = _base_fields(record.numero, record.source_system)

    movimento = record.ultima_movimentacao
    last_movement = None
    if movimento:
        last_movement = Movement(
            date=parse_date(movimento.data),
            name=movimento.descricao,
            code=movimento.codigo,
            description=movimento.descricao
        )

    last_update = parse_date(record.ultima_atualizacao)
    if last_update is None and last_movement is not None:
        last_update = last_movement.date

    return CanonicalCase(
        **fields,
        classification=code_name(None, record.classe),
        subject=code_name(None, record.assunto),
        filing_date=parse_date(record.data_distribuicao),
        last_update_date=last_update,
        parties=group_parties(
            (p.nome, p.papel, p.documento, p.tipo_pessoa) for p in record.partes
        ),
        judge=sanitize_name(record.juiz),
        claim_value=parse_money(record.valor),
        instance_level=parse_instance(record.instancia),
        status=infer_status(movimento.descricao if movimento else None),
        last_movement=last_movement,
        synced_at=now or utcnow(),
        source_system=record.source_system,
        sources=[record.source_system]
    )


def normalize_record(raw: Union[DataJudRecord, ScrapedRecord, Dict[str, Any]], now: Optional[datetime] = None) -> CanonicalCase:
    """Ponto de entrada único: despacha pela variante (`source_system`)."""
    if isinstance(raw, dict):
        raw = _raw_record_adapter.validate_python(raw)
    if isinstance(raw, DataJudRecord):
        return normalize_datajud(raw, now)
    if isinstance(raw, ScrapedRecord):
        return normalize_scraped(raw, now)
    raise NormalizationError(f"Tipo de registro desconhecido: {type(raw).__name__}")
