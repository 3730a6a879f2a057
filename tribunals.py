"""
Tabela de Tribunais
===================

Resolução do tribunal a partir do número CNJ (NNNNNNN-DD.AAAA.J.TR.OOOO):
o segmento de justiça (J) + tribunal (TR) identificam o órgão.
"""

from typing import Dict, Optional

from schemas import UNKNOWN_TRIBUNAL

# Chave: J + TR (3 dígitos, posições 13-15 do número de 20 dígitos)
TRIBUNAL_MAP: Dict[str, str] = {
    # Tribunais Superiores
    "100": "STF",
    "200": "CNJ",
    "300": "STJ",
    "500": "TST",
    "600": "TSE",
    "700": "STM",

    # Tribunais Regionais Federais
    "401": "TRF1",
    "402": "TRF2",
    "403": "TRF3",
    "404": "TRF4",
    "405": "TRF5",
    "406": "TRF6",

    # Justiça Estadual
    "801": "TJAC",
    "802": "TJAL",
    "803": "TJAP",
    "804": "TJAM",
    "805": "TJBA",
    "806": "TJCE",
    "807": "TJDFT",
    "808": "TJES",
    "809": "TJGO",
    "810": "TJMA",
    "811": "TJMT",
    "812": "TJMS",
    "813": "TJMG",
    "814": "TJPA",
    "815": "TJPB",
    "816": "TJPR",
    "817": "TJPE",
    "818": "TJPI",
    "819": "TJRJ",
    "820": "TJRN",
    "821": "TJRS",
    "822": "TJRO",
    "823": "TJRR",
    "824": "TJSC",
    "825": "TJSE",
    "826": "TJSP",
    "827": "TJTO",
}

# Aliases dos índices da API pública do DataJud (api_publica_<alias>/_search)
DATAJUD_ALIASES: Dict[str, str] = {
    sigla: sigla.lower() for sigla in TRIBUNAL_MAP.values() if sigla != "CNJ"
}


def court_segment(process_id: str) -> Optional[str]:
    """Extrai J+TR do número canônico; None se o número for curto demais."""
    if not process_id or len(process_id) < 16:
        return None
    return process_id[13:16]


def resolve_tribunal(process_id: str) -> str:
    """Sigla do tribunal ou DESCONHECIDO (nunca falha)."""
    segment = court_segment(process_id)
    if segment is None:
        return UNKNOWN_TRIBUNAL
    return TRIBUNAL_MAP.get(segment, UNKNOWN_TRIBUNAL)


def datajud_alias(tribunal: str) -> Optional[str]:
    return DATAJUD_ALIASES.get((tribunal or "").upper())
