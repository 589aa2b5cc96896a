"""
Per-item cardinality validation of product configurations.
"""

from dataclasses import dataclass, field
from typing import List

from prodigy_hub.models.common import StateReason
from prodigy_hub.models.product_configuration import (
    CheckProductConfigurationItem,
    ConfigurationItemState,
)

MISSING_CHARACTERISTIC_CODE = '123'
TOO_MANY_VALUES_CODE = '124'


@dataclass(frozen=True)
class ItemValidation:
    state: ConfigurationItemState
    reasons: List[StateReason] = field(default_factory=list)

    @property
    def approved(self) -> bool:
        return self.state == ConfigurationItemState.APPROVED


def validate(item: CheckProductConfigurationItem, enforce_max_cardinality: bool = False) -> ItemValidation:
    """
    Validate the characteristics of one configuration item.

    A characteristic with ``minCardinality > 0`` needs at least that many
    selected values. With ``enforce_max_cardinality``, a characteristic may not
    have more selected values than its ``maxCardinality``. The item is approved
    iff no characteristic fails; one reason is reported per failure, in
    characteristic order.
    """
    reasons: List[StateReason] = []
    configuration = item.product_configuration
    characteristics = configuration.configuration_characteristic if configuration else []

    for characteristic in characteristics:
        selected = characteristic.selected_count
        if characteristic.min_cardinality > 0 and selected < characteristic.min_cardinality:
            reasons.append(StateReason(
                code=MISSING_CHARACTERISTIC_CODE,
                label=f"Missing required characteristic: {characteristic.name}",
            ))
        elif (
            enforce_max_cardinality
            and characteristic.max_cardinality is not None
            and selected > characteristic.max_cardinality
        ):
            reasons.append(StateReason(
                code=TOO_MANY_VALUES_CODE,
                label=f"Too many values selected for characteristic: {characteristic.name}",
            ))

    state = ConfigurationItemState.REJECTED if reasons else ConfigurationItemState.APPROVED
    return ItemValidation(state=state, reasons=reasons)
