#!/usr/bin/env python3
"""
Cron Job - Sync Incremental de um Tribunal
==========================================

Busca os processos atualizados nas últimas horas na fonte oficial e grava
apenas os que mudaram. Um tribunal por execução.

Configuração do cron:
# TJSP a cada hora, TJMG a cada 2 horas
0 * * * * cd /path/to/judsync && python3 cron_sync_tribunal.py TJSP >> logs/cron.log 2>&1
0 */2 * * * cd /path/to/judsync && python3 cron_sync_tribunal.py TJMG >> logs/cron.log 2>&1

Código de saída: 0 para success/no_data, 1 para error.
"""

import asyncio
import sys
import os
from datetime import datetime

# Adicionar diretório do projeto ao path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from logger import logger
from schemas import SyncStatus
from tasks import sync_tribunal


def exit_code_for(status: SyncStatus) -> int:
    return 0 if status in (SyncStatus.SUCCESS, SyncStatus.NO_DATA) else 1


def main(argv=None) -> int:
    """Função principal do cron job."""
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("Uso: python3 cron_sync_tribunal.py <TRIBUNAL>")
        return 2

    tribunal = argv[0].upper()
    logger.info("=" * 80)
    logger.info(f"CRON JOB INICIADO - {tribunal} - {datetime.now()}")
    logger.info("=" * 80)

    try:
        entry = asyncio.run(sync_tribunal(tribunal))

        if exit_code_for(entry.status) == 0:
            logger.info(f"✅ {entry.status.value.upper()}: {entry.total_written} escritas, {entry.skipped} sem mudanças")
            print(f"{entry.status.value.upper()}: {entry.total_written} escritas")
        else:
            errors = "; ".join(e.get("error", "") for e in entry.errors) or "Erro desconhecido"
            logger.error(f"❌ ERRO: {errors}")
            print(f"ERROR: {errors}")
        return exit_code_for(entry.status)

    except Exception as e:
        logger.error(f"❌ ERRO CRÍTICO: {e}", exc_info=True)
        print(f"CRITICAL ERROR: {e}")
        return 1

    finally:
        logger.info("=" * 80)
        logger.info(f"CRON JOB FINALIZADO - {tribunal} - {datetime.now()}")
        logger.info("=" * 80)


if __name__ == "__main__":
    sys.exit(main())
