"""Set-menu option model: selection validation, unit price and the
flattened ``selected_options`` snapshot stored on order lines."""
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

from schemas.menu_management import OptionChoice, OptionGroup
from schemas.order_management import SelectedOption
from services.exceptions import MissingRequiredOption, TooManyOptions, ValidationError

logger = logging.getLogger(__name__)

# group_id -> choice_id, or a list of choice ids for multi-choice groups
Selections = Mapping[str, Union[str, Sequence[str]]]


def as_option_groups(options) -> List[OptionGroup]:
    """Accept ORM JSON payloads or already-parsed groups."""
    return [g if isinstance(g, OptionGroup) else OptionGroup.model_validate(g) for g in (options or [])]


def _choice_ids(value) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [value]
    # Picking the same choice twice counts once
    return list(dict.fromkeys(v for v in value if v))


def selected_choices(options, selections: Optional[Selections]) -> Dict[str, List[OptionChoice]]:
    """Chosen OptionChoice objects keyed by group id. Unknown ids are skipped."""
    selections = selections or {}
    chosen: Dict[str, List[OptionChoice]] = {}
    for group in as_option_groups(options):
        picks = [group.get_choice(cid) for cid in _choice_ids(selections.get(group.id))]
        picks = [c for c in picks if c is not None]
        if picks:
            chosen[group.id] = picks
    return chosen


def validate_selections(options, selections: Optional[Selections]) -> None:
    """
    Check a selection mapping before the item may be added to an order.

    Raises MissingRequiredOption naming every group whose min_selection is not
    met, TooManyOptions when a group exceeds max_selection and ValidationError
    for unknown or unavailable choices.
    """
    groups = as_option_groups(options)
    selections = selections or {}
    known_groups = {g.id for g in groups}
    unknown = [gid for gid in selections if gid not in known_groups]
    if unknown:
        raise ValidationError(f"Unknown option group(s): {', '.join(unknown)}")

    missing: List[str] = []
    for group in groups:
        ids = _choice_ids(selections.get(group.id))
        for choice_id in ids:
            choice = group.get_choice(choice_id)
            if choice is None:
                raise ValidationError(f"Choice {choice_id} does not belong to '{group.name}'")
            if not choice.is_available:
                raise ValidationError(f"'{choice.name}' is currently unavailable")
        if len(ids) < group.min_selection:
            missing.append(group.name)
        elif len(ids) > group.max_selection:
            raise TooManyOptions(group.name, group.max_selection)

    if missing:
        logger.debug(f"Missing required option groups: {missing}")
        raise MissingRequiredOption(missing)


def compute_unit_price(base_price: float, options, selections: Optional[Selections]) -> float:
    """Base price plus the extra price of every selected choice."""
    chosen = selected_choices(options, selections)
    return base_price + sum(c.extra_price for picks in chosen.values() for c in picks)


def build_selected_options(options, selections: Optional[Selections]) -> List[SelectedOption]:
    chosen = selected_choices(options, selections)
    snapshot: List[SelectedOption] = []
    # Keep the menu's group order; unselected optional groups emit nothing
    for group in as_option_groups(options):
        for choice in chosen.get(group.id, []):
            snapshot.append(SelectedOption(
                group_name=group.name,
                name=choice.name,
                choice_name=choice.name,
                price=choice.extra_price,
                item_id=choice.item_id,
            ))
    return snapshot


def price_item(item, selections: Optional[Selections] = None) -> float:
    """Effective unit price of a MenuItem (ORM row or schema) for the selections."""
    return compute_unit_price(item.price, item.options, selections)
