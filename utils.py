import re
import unicodedata
from datetime import datetime, timezone
from typing import Optional

def normalize_string(text: Optional[str]) -> Optional[str]:
    """
    Normaliza string removendo acentos e convertendo para minúsculas.
    Útil para comparações case-insensitive e accent-insensitive.
    """
    if not text:
        return text

    # Normalizar unicode (NFD = decomposição canônica)
    nfd = unicodedata.normalize('NFD', text)

    # Remover acentos (categoria Mn = Nonspacing Mark)
    without_accents = ''.join(char for char in nfd if unicodedata.category(char) != 'Mn')

    # Converter para minúsculas e remover espaços extras
    return re.sub(r'\s+', ' ', without_accents.lower()).strip()

def only_digits(text: Optional[str]) -> str:
    """Remove tudo que não for dígito."""
    if text is None:
        return ""
    return re.sub(r'[^0-9]', '', str(text))

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def today_key(now: Optional[datetime] = None) -> str:
    """Chave do documento diário de log (YYYY-MM-DD, UTC)."""
    return (now or utcnow()).date().isoformat()
