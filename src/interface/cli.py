from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass

from application.analytics import AnalyticsService
from application.auth import AuthService
from application.gate import TransactionGate
from application.ledger_service import LedgerService
from application.subscription_service import SubscriptionService
from infrastructure.config import Settings
from infrastructure.llm.llm_client import LLMClient
from infrastructure.payments.ziina_client import ZiinaClient
from infrastructure.persistence.account_store import AccountStore
from infrastructure.persistence.database import Database
from infrastructure.persistence.ledger_store import LedgerStore
from infrastructure.plans.catalog import PlanCatalog
from llm.insights_llm import CompletionClient, InsightsLLM
from llm.receipt_llm import ReceiptLLM

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    db: Database
    accounts: AccountStore
    ledger_store: LedgerStore
    gate: TransactionGate
    auth: AuthService
    ledger: LedgerService
    analytics: AnalyticsService
    subscriptions: SubscriptionService


def build_services(
    settings: Settings | None = None,
    llm_client: CompletionClient | None = None,
    payments: ZiinaClient | None = None,
    db: Database | None = None,
) -> Services:
    settings = settings or Settings.from_env()
    db = db or Database(settings.database_path)
    llm_client = llm_client or LLMClient()
    payments = payments or ZiinaClient(
        api_key=settings.ziina_api_key,
        base_url=settings.ziina_base_url,
        webhook_secret=settings.ziina_webhook_secret,
        timeout_seconds=settings.ziina_timeout_seconds,
    )

    accounts = AccountStore(db)
    ledger_store = LedgerStore(db)
    gate = TransactionGate(db, accounts)
    return Services(
        settings=settings,
        db=db,
        accounts=accounts,
        ledger_store=ledger_store,
        gate=gate,
        auth=AuthService(accounts, secret=settings.jwt_secret, expire_days=settings.jwt_expire_days),
        ledger=LedgerService(ledger_store, gate, ReceiptLLM(llm_client)),
        analytics=AnalyticsService(ledger_store, InsightsLLM(llm_client)),
        subscriptions=SubscriptionService(accounts, PlanCatalog(), payments, client_url=settings.client_url),
    )


def sweep_expired(services: Services) -> int:
    changed = services.subscriptions.sweep_expired()
    print(f"Expired {changed} lapsed subscription(s).")
    return 0


def serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("interface.api:app", host=host, port=port, log_level=os.getenv("LOG_LEVEL", "info").lower())
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="finance-ledger", description="Finance ledger API and maintenance tasks.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="Run the REST API.")
    serve_parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "5000")))

    sub.add_parser("sweep-expired", help="Expire trials and paid periods whose end has passed.")

    args = parser.parse_args(argv)
    if args.command == "serve":
        return serve(args.host, args.port)
    return sweep_expired(build_services())


if __name__ == "__main__":
    raise SystemExit(main())
