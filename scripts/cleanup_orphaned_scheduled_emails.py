#!/usr/bin/env python3
"""Reconcilia emails agendados órfãos (presos na pasta Scheduled).

Uso:
    python scripts/cleanup_orphaned_scheduled_emails.py --project-id meu-projeto --apply
    python scripts/cleanup_orphaned_scheduled_emails.py --apply --delete-orphaned

Padrão: dry-run (não escreve nada).
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from google.cloud import firestore  # noqa: E402

from app.bootstrap import initialize_app  # noqa: E402
from app.observability import set_correlation_id  # noqa: E402
from app.services.scheduled_reconciliation import ScheduledReconciler  # noqa: E402
from config.settings import (  # noqa: E402
    get_base_settings,
    get_email_sync_settings,
    get_firestore_settings,
)
from utils.errors import EmailStoreError  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--project-id",
        default=None,
        help="Project ID do Firestore. Se omitido, usa configuração padrão.",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Aplica as correções no Firestore. Sem esta flag executa dry-run.",
    )
    parser.add_argument(
        "--delete-orphaned",
        action="store_true",
        help="Remove agendados sem assunto e sem conteúdo em vez de marcá-los como enviados.",
    )
    parser.add_argument(
        "--delete-matched-sent",
        action="store_true",
        help="Remove agendados que casam com um email já enviado.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    initialize_app()
    set_correlation_id()
    base = get_base_settings()

    project_id = args.project_id or base.gcp_project or None
    client = firestore.Client(project=project_id) if project_id else firestore.Client()
    reconciler = ScheduledReconciler(
        client,
        get_email_sync_settings(),
        collection=get_firestore_settings().collection_emails,
    )

    try:
        report = reconciler.run(
            dry_run=not args.apply,
            delete_orphaned=args.delete_orphaned,
            delete_matched_sent=args.delete_matched_sent,
        )
    except EmailStoreError as exc:
        print(f"[error] leitura dos agendados falhou: {exc.kind}", file=sys.stderr)
        return 1

    mode = "apply" if args.apply else "dry-run"
    print(
        f"[{mode}] updated={report.updated} deleted={report.deleted} "
        f"skipped={report.skipped} errors={len(report.errors)}"
    )
    for reason, count in sorted(report.reason_counts().items()):
        print(f"  - {reason}: {count}")
    return 0 if not report.errors else 2


if __name__ == "__main__":
    sys.exit(main())
