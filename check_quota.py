#!/usr/bin/env python3
"""
Verificação da Cota Diária
==========================

Exibe o consumo de escritas do dia. Pode rodar antes dos jobs de sync no cron:

    python3 check_quota.py && python3 cron_sync_tribunal.py TJSP

Código de saída: 1 quando a cota está EXCEEDED, 0 nos demais casos (ERROR é
apenas consultivo).
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from schemas import QuotaLevel
from tasks import build_default_quota_tracker, build_default_store


def main() -> int:
    status = build_default_quota_tracker(build_default_store()).check_quota()

    print(f"Status: {status.status.value}")
    print(f"Escritas: {status.writes_used}/{status.writes_budget} ({status.writes_percent}%)")
    print(f"Restantes: {status.writes_remaining}")
    if status.error:
        print(f"Erro na leitura: {status.error}")

    return 1 if status.status == QuotaLevel.EXCEEDED else 0


if __name__ == "__main__":
    sys.exit(main())
