"""
Application of economic effects to a class ledger.

`apply_effect` dispatches over the closed set of effect variants; adding a
variant without a branch here is reported by type checkers through
`assert_never`. Balance credits are commit-time increments written in
chunks, so concurrent trades on the same accounts are never overwritten.
Levies debit each account in its own transaction against the cash it holds
at commit time. The context counts committed writes so a caller can tell
a failed effect that changed nothing from one that was partly applied.
"""

import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, assert_never

import structlog

from ..logging.config import get_audit_logger, log_balance_mutation
from ..models.account import Account
from ..models.events import (
    CashBonus,
    CashPenalty,
    EconomicEffect,
    EventResult,
    Lottery,
    RealEstateChange,
    StockTaxChange,
    TaxExtra,
    TaxRefund,
)
from ..persistence import ACCOUNTS, EVENT_SETTINGS, INSTRUMENTS, TREASURIES
from ..persistence.base import Ledger, Transaction, WriteOp
from ..utils.money import round_half_up
from ..utils.time import format_timestamp

logger = structlog.get_logger(__name__)
audit_logger = get_audit_logger(__name__)


@dataclass
class EffectContext:
    """Everything an effect needs to mutate one class."""
    ledger: Ledger
    class_code: str
    now: datetime
    batch_size: int = 400
    history_limit: int = 20
    rng: random.Random = field(default_factory=random.Random)
    tax_override_hours: int = 24
    committed_writes: int = 0

    @property
    def partially_applied(self) -> bool:
        return self.committed_writes > 0

    def commit(self, ops: list[WriteOp]) -> None:
        self.ledger.commit_in_chunks(ops, self.batch_size, on_chunk=self._count)

    def _count(self, chunk: list[WriteOp]) -> None:
        self.committed_writes += len(chunk)


def _class_accounts(ctx: EffectContext) -> tuple[list[Account], Optional[Account]]:
    """Participating members of the class and its first admin account."""
    accounts = [Account.from_doc(key, doc)
                for key, doc in ctx.ledger.query(ACCOUNTS, class_code=ctx.class_code)]
    members = [a for a in accounts if a.is_participant]
    admin = next((a for a in accounts if a.is_admin and not a.is_super_admin), None)
    return members, admin


def _apply_price_shift(effect: RealEstateChange, ctx: EffectContext) -> EventResult:
    docs = ctx.ledger.query(INSTRUMENTS, class_code=ctx.class_code,
                            sector=effect.sector, is_listed=True)
    if not docs:
        logger.info("No instruments in sector, nothing to shift",
                    class_code=ctx.class_code, sector=effect.sector)
        return EventResult(skipped_reason="no matching instruments")

    ops = []
    for key, doc in docs:
        new_price = max(effect.price_floor, round_half_up((doc.get("price") or 0) * effect.multiplier))
        history = (list(doc.get("price_history") or []) + [new_price])[-ctx.history_limit:]
        ops.append(WriteOp.update(INSTRUMENTS, key, {
            "price": new_price,
            "price_history": history,
            "last_updated": format_timestamp(ctx.now),
        }))
    ctx.commit(ops)

    logger.info("Sector prices shifted", class_code=ctx.class_code, sector=effect.sector,
                change_percent=effect.change_percent, affected=len(ops))
    return EventResult(affected_count=len(ops))


def _apply_tax_refund(effect: TaxRefund, ctx: EffectContext) -> EventResult:
    treasury = ctx.ledger.get(TREASURIES, ctx.class_code) or {}
    treasury_amount = treasury.get("total_amount") or 0
    if treasury_amount <= 0:
        logger.info("Treasury is empty, no refund", class_code=ctx.class_code)
        return EventResult(skipped_reason="empty treasury")

    members, _admin = _class_accounts(ctx)
    if not members:
        return EventResult(skipped_reason="no members")

    total_refund = math.floor(treasury_amount * effect.refund_rate)
    per_member = total_refund // len(members)
    if per_member <= 0:
        logger.info("Refund per member rounds to zero", class_code=ctx.class_code,
                    total_refund=total_refund, members=len(members))
        return EventResult(skipped_reason="refund too small")

    paid = per_member * len(members)
    ops = [WriteOp.increment(ACCOUNTS, m.id, {"cash": per_member}) for m in members]
    ops.append(WriteOp.increment(TREASURIES, ctx.class_code, {"total_amount": -paid}))
    ctx.commit(ops)

    log_balance_mutation(audit_logger, ctx.class_code, TaxRefund.TYPE, len(members), paid,
                         context={"per_account": per_member})
    return EventResult(affected_count=len(members), total_amount=paid, per_account=per_member)


def _levy_account(ctx: EffectContext, account_id: str, rate: float) -> int:
    """Move floor(cash * rate) of one account's current cash into the treasury."""
    def levy(tx: Transaction) -> int:
        doc = tx.get(ACCOUNTS, account_id)
        cash = (doc or {}).get("cash") or 0
        if isinstance(cash, bool) or not isinstance(cash, (int, float)) or cash <= 0:
            return 0
        amount = min(cash, math.floor(cash * rate))
        if amount <= 0:
            return 0
        tx.update(ACCOUNTS, account_id, {"cash": cash - amount})
        tx.increment(TREASURIES, ctx.class_code, {
            "total_amount": amount,
            "economic_event_revenue": amount,
        })
        return amount

    amount = ctx.ledger.run_transaction(levy)
    if amount:
        ctx.committed_writes += 2
    return amount


def _collect_levy(ctx: EffectContext, rate: float, effect_type: str) -> EventResult:
    members, _admin = _class_accounts(ctx)

    taxed = 0
    collected = 0
    for member in members:
        if member.cash <= 0:
            continue
        amount = _levy_account(ctx, member.id, rate)
        if amount > 0:
            taxed += 1
            collected += amount

    if not taxed:
        return EventResult(skipped_reason="nothing to collect")

    log_balance_mutation(audit_logger, ctx.class_code, effect_type, taxed, collected)
    return EventResult(affected_count=taxed, total_amount=collected)


def _apply_tax_extra(effect: TaxExtra, ctx: EffectContext) -> EventResult:
    return _collect_levy(ctx, effect.tax_rate, TaxExtra.TYPE)


def _apply_cash_penalty(effect: CashPenalty, ctx: EffectContext) -> EventResult:
    return _collect_levy(ctx, effect.penalty_rate, CashPenalty.TYPE)


def _apply_stock_tax_change(effect: StockTaxChange, ctx: EffectContext) -> EventResult:
    expires_at = ctx.now + timedelta(hours=ctx.tax_override_hours)
    ctx.commit([WriteOp.merge(EVENT_SETTINGS, ctx.class_code, {
        "stock_tax_multiplier": effect.multiplier,
        "stock_tax_expires_at": format_timestamp(expires_at),
        "updated_at": format_timestamp(ctx.now),
    })])

    logger.info("Stock tax multiplier set", class_code=ctx.class_code,
                multiplier=effect.multiplier, expires_at=format_timestamp(expires_at))
    return EventResult(details={
        "multiplier": effect.multiplier,
        "expires_at": format_timestamp(expires_at),
    })


def _apply_cash_bonus(effect: CashBonus, ctx: EffectContext) -> EventResult:
    members, admin = _class_accounts(ctx)
    if admin is None:
        logger.warning("No admin account to fund the bonus", class_code=ctx.class_code)
        return EventResult(skipped_reason="no admin account")
    if not members:
        return EventResult(skipped_reason="no members")

    total = effect.amount * len(members)
    ops = [WriteOp.increment(ACCOUNTS, m.id, {"cash": effect.amount}) for m in members]
    ops.append(WriteOp.increment(ACCOUNTS, admin.id, {"cash": -total}))
    ctx.commit(ops)

    log_balance_mutation(audit_logger, ctx.class_code, CashBonus.TYPE, len(members), total,
                         context={"funded_by": admin.id})
    return EventResult(affected_count=len(members), total_amount=total, per_account=effect.amount)


def _apply_lottery(effect: Lottery, ctx: EffectContext) -> EventResult:
    members, admin = _class_accounts(ctx)
    if admin is None:
        logger.warning("No admin account to fund the lottery", class_code=ctx.class_code)
        return EventResult(skipped_reason="no admin account")
    if not members:
        return EventResult(skipped_reason="no members")

    winners = ctx.rng.sample(members, min(effect.winner_count, len(members)))
    total = effect.prize_amount * len(winners)
    ops = [WriteOp.increment(ACCOUNTS, w.id, {"cash": effect.prize_amount}) for w in winners]
    ops.append(WriteOp.increment(ACCOUNTS, admin.id, {"cash": -total}))
    ctx.commit(ops)

    winner_ids = tuple(w.id for w in winners)
    log_balance_mutation(audit_logger, ctx.class_code, Lottery.TYPE, len(winners), total,
                         context={"winners": list(winner_ids), "funded_by": admin.id})
    return EventResult(affected_count=len(winners), total_amount=total,
                       per_account=effect.prize_amount, winners=winner_ids)


def apply_effect(effect: EconomicEffect, ctx: EffectContext) -> EventResult:
    """
    Apply one economic effect to a class.

    Args:
        effect: Effect variant with validated parameters
        ctx: Target class, ledger and execution settings

    Returns:
        EventResult describing what changed
    """
    if isinstance(effect, RealEstateChange):
        return _apply_price_shift(effect, ctx)
    elif isinstance(effect, TaxRefund):
        return _apply_tax_refund(effect, ctx)
    elif isinstance(effect, TaxExtra):
        return _apply_tax_extra(effect, ctx)
    elif isinstance(effect, CashBonus):
        return _apply_cash_bonus(effect, ctx)
    elif isinstance(effect, Lottery):
        return _apply_lottery(effect, ctx)
    elif isinstance(effect, CashPenalty):
        return _apply_cash_penalty(effect, ctx)
    elif isinstance(effect, StockTaxChange):
        return _apply_stock_tax_change(effect, ctx)
    else:
        assert_never(effect)
