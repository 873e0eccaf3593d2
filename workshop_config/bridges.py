"""
Config -> Engine Bridges.

Turn a ``WorkshopConfig`` into a wired set of kernel objects and engines.
These live in workshop_config (the producer) because the kernel never
imports workshop_config.

Usage:
    from workshop_config import get_active_config
    from workshop_config.bridges import build_engines

    runtime = build_engines(get_active_config())
    runtime.receiving.receive(po_id, lines)
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from workshop_config.schema import CheckoutSettings, WorkshopConfig
from workshop_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from workshop_kernel.db.immutability import register_immutability_listeners
from workshop_kernel.db.transaction import TransactionRunner
from workshop_kernel.domain.clock import Clock, SystemClock
from workshop_kernel.logging_config import configure_logging, get_logger
from workshop_modules.checkout.config import CheckoutConfig
from workshop_modules.checkout.service import CheckoutEngine
from workshop_modules.receiving.service import ReceivingEngine
from workshop_modules.transfers.service import TransferEngine

logger = get_logger("config.bridges")


@dataclass(frozen=True)
class WorkshopRuntime:
    """Everything an application needs, built from one configuration."""

    config: WorkshopConfig
    engine: Engine
    session_factory: sessionmaker[Session]
    runner: TransactionRunner
    clock: Clock
    receiving: ReceivingEngine
    transfers: TransferEngine
    checkout: CheckoutEngine


def build_checkout_config(settings: CheckoutSettings) -> CheckoutConfig:
    return CheckoutConfig(
        default_tax_rate=settings.default_tax_rate,
        prevalidate_cart=settings.prevalidate_cart,
        walk_in_customer_id=settings.walk_in_customer_id,
        repair_delivery_days=settings.repair_delivery_days,
        order_delivery_days=settings.order_delivery_days,
        invoice_due_days=settings.invoice_due_days,
    )


def build_engines(
    config: WorkshopConfig,
    clock: Clock | None = None,
    *,
    create_schema: bool = True,
) -> WorkshopRuntime:
    """
    Initialise logging, the database engine and the three engines.

    Postconditions:
        - Immutability listeners are registered.
        - With ``create_schema`` every table exists.
    """
    configure_logging(level=config.logging.level)
    engine = init_engine_from_url(config.database.url, echo=config.database.echo)
    register_immutability_listeners()
    if create_schema:
        create_tables(engine)

    clock = clock or SystemClock()
    runner = TransactionRunner(
        get_session_factory(),
        max_attempts=config.transactions.max_attempts,
        backoff_seconds=config.transactions.backoff_seconds,
    )
    runtime = WorkshopRuntime(
        config=config,
        engine=engine,
        session_factory=get_session_factory(),
        runner=runner,
        clock=clock,
        receiving=ReceivingEngine(
            runner, clock, over_receipt_policy=config.receiving.over_receipt_policy,
        ),
        transfers=TransferEngine(runner, clock),
        checkout=CheckoutEngine(
            runner, clock, config=build_checkout_config(config.checkout),
        ),
    )
    logger.info(
        "workshop_runtime_built",
        extra={
            "dialect": engine.dialect.name,
            "max_attempts": config.transactions.max_attempts,
            "over_receipt_policy": config.receiving.over_receipt_policy,
            "prevalidate_cart": config.checkout.prevalidate_cart,
        },
    )
    return runtime
