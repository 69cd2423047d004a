"""Built-in economic event templates used when a class defines none."""

from ..models.events import (
    CashBonus,
    CashPenalty,
    EventTemplate,
    Lottery,
    RealEstateChange,
    StockTaxChange,
    TaxExtra,
    TaxRefund,
)

DEFAULT_EVENT_TEMPLATES: tuple[EventTemplate, ...] = (
    EventTemplate(
        id="real_estate_up_20",
        title="Property boom!",
        description="The recovery lifts every property price by 20%.",
        effect=RealEstateChange(change_percent=20),
    ),
    EventTemplate(
        id="real_estate_down_15",
        title="Property slump!",
        description="The downturn cuts every property price by 15%.",
        effect=RealEstateChange(change_percent=-15),
    ),
    EventTemplate(
        id="tax_refund",
        title="Tax refund day!",
        description="The government returns part of the treasury to every citizen.",
        effect=TaxRefund(refund_rate=0.3),
    ),
    EventTemplate(
        id="tax_extra",
        title="Emergency tax!",
        description="An extra levy of 3% of cash is collected for the treasury.",
        effect=TaxExtra(tax_rate=0.03),
    ),
    EventTemplate(
        id="cash_bonus",
        title="Stimulus payment!",
        description="Every citizen receives a support payment.",
        effect=CashBonus(amount=50000),
    ),
    EventTemplate(
        id="lottery",
        title="Lucky draw!",
        description="Three citizens are drawn to win a prize.",
        effect=Lottery(winner_count=3, prize_amount=100000),
    ),
    EventTemplate(
        id="cash_penalty",
        title="Economic crisis levy!",
        description="The crisis takes 5% of every citizen's cash.",
        effect=CashPenalty(penalty_rate=0.05),
    ),
    EventTemplate(
        id="stock_tax_exempt",
        title="Stock tax holiday!",
        description="No tax is charged on stock sales for the next 24 hours.",
        effect=StockTaxChange(multiplier=0),
    ),
    EventTemplate(
        id="stock_tax_double",
        title="Stock tax doubled!",
        description="Tax on stock sales is doubled for the next 24 hours.",
        effect=StockTaxChange(multiplier=2),
    ),
)


def find_template(templates, event_id: str):
    """First template with `event_id`, or None."""
    for template in templates:
        if template.id == event_id:
            return template
    return None
