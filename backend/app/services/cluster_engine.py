"""
Cluster Aggregator: subtotal, markup and total for a cluster of cost lines.

    subtotal      = Σ qty_i × unit_cost_i          (null cost counts as 0)
    markup_amount = subtotal × value / 100          (percentage)
                  = value                           (fixed)
    total         = subtotal + markup_amount

Markup is always taken on the full subtotal.  ``markup_base`` in the summary
only reports the share of lines flagged ``include_in_markup``.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from app.models.costing_types import (
    ClusterRecord,
    FixedMarkup,
    LineDraft,
    Markup,
    MarkupType,
    PercentageMarkup,
    empty_markup,
)


def compute_subtotal(lines: Sequence[LineDraft]) -> float:
    return sum(float(line.qty or 0.0) * float(line.unit_cost or 0.0) for line in lines)


def compute_markup_amount(subtotal: float, markup: Markup) -> float:
    if isinstance(markup, PercentageMarkup):
        return subtotal * markup.value / 100.0
    if isinstance(markup, FixedMarkup):
        return markup.value
    raise TypeError(f"Unsupported markup variant: {markup!r}")


def compute_total(subtotal: float, markup: Markup) -> float:
    return subtotal + compute_markup_amount(subtotal, markup)


@dataclass
class ClusterSummary:
    cluster_id: Optional[str]
    subtotal: float
    markup_base: float
    markup: Markup
    markup_amount: float
    total: float
    line_count: int = 0
    unknown_cost_line_ids: List[str] = field(default_factory=list)


def summarize(cluster: ClusterRecord) -> ClusterSummary:
    lines = cluster.lines
    subtotal = compute_subtotal(lines)
    markup_base = compute_subtotal([line for line in lines if line.include_in_markup])
    markup_amount = compute_markup_amount(subtotal, cluster.markup)
    return ClusterSummary(
        cluster_id=cluster.id,
        subtotal=subtotal,
        markup_base=markup_base,
        markup=cluster.markup,
        markup_amount=markup_amount,
        total=compute_total(subtotal, cluster.markup),
        line_count=len(lines),
        unknown_cost_line_ids=[line.id for line in lines if line.has_unknown_cost],
    )


def switch_markup_type(current: Markup, new_type: MarkupType) -> Markup:
    """
    Changing between percentage and fixed always resets the value to 0 so a
    percentage is never read as a currency amount (or the reverse).
    """
    if current.markup_type is new_type:
        return current
    return empty_markup(new_type)


@dataclass
class MarkupDraft:
    """
    Local-first markup editing: keystrokes update ``text`` only; ``commit``
    returns the markup to persist, or None when nothing changed.
    """
    committed: Markup
    text: str = ""

    def __post_init__(self) -> None:
        if not self.text:
            self.text = _format_value(self.committed.value)

    def edit(self, text: str) -> None:
        self.text = text

    def preview_amount(self, subtotal: float) -> float:
        return compute_markup_amount(subtotal, self._parsed())

    def commit(self) -> Optional[Markup]:
        candidate = self._parsed()
        self.text = _format_value(candidate.value)
        if candidate.value == self.committed.value:
            return None
        self.committed = candidate
        return candidate

    def _parsed(self) -> Markup:
        try:
            value = float(self.text)
        except (TypeError, ValueError):
            value = 0.0
        return type(self.committed)(value)


def _format_value(value: float) -> str:
    return f"{value:g}"
