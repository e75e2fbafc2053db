"""
Quote Assembler - readiness gate and frozen quote snapshots.

A quote copies everything it needs out of the live selection at assembly
time (client details, model display fields, option names and prices, and
the pricing breakdown) so later edits to the selection or the catalog can't
change a quote that has already been handed to the PDF renderer.
"""

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from services.catalog import ModelSpecs
from services.pricing import PricingBreakdown
from services.selection import CLIENT_WIRE_NAMES, ClientInfo, SelectionState
from validators import ValidationError, validate_client_info


class PreconditionError(ValidationError):
    """Quote requested before the selection is complete"""


@dataclass(frozen=True)
class QuotePolicy:
    """What a selection needs before it can become a quote."""
    require_option: bool = True
    required_client_fields: Tuple[str, ...] = ('full_name', 'zip')

    def __post_init__(self):
        for name in self.required_client_fields:
            ClientInfo.field_name(name)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> 'QuotePolicy':
        """Build from a Flask config; client field names may be wire or attribute form"""
        require_option = mapping.get('QUOTE_REQUIRE_OPTION', True)
        if isinstance(require_option, str):
            require_option = require_option.strip().lower() == 'true'
        fields = mapping.get('QUOTE_REQUIRED_CLIENT_FIELDS') or ('full_name', 'zip')
        if isinstance(fields, str):
            fields = fields.split(',')
        return cls(
            require_option=bool(require_option),
            required_client_fields=tuple(ClientInfo.field_name(f.strip()) for f in fields if f.strip()),
        )


DEFAULT_POLICY = QuotePolicy()


@dataclass(frozen=True)
class ModelSnapshot:
    id: str
    code: str
    name: str
    description: str
    base_price: float
    specs: ModelSpecs
    features: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'description': self.description,
            'basePrice': self.base_price,
            'specs': self.specs.to_dict(),
            'features': list(self.features),
        }


@dataclass(frozen=True)
class OptionSnapshot:
    id: str
    subject: str
    name: str
    description: str
    price: float
    is_package: bool = False

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'subject': self.subject,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'isPackage': self.is_package,
        }


@dataclass(frozen=True)
class Quote:
    """Immutable quote handed to the PDF renderer."""
    quote_id: str
    created_at: datetime
    client: ClientInfo
    model: ModelSnapshot
    options: Tuple[OptionSnapshot, ...]
    pricing: PricingBreakdown

    def to_dict(self) -> Dict:
        return {
            'quoteId': self.quote_id,
            'timestamp': self.created_at.isoformat(),
            'client': self.client.to_dict(),
            'model': self.model.to_dict(),
            'options': [o.to_dict() for o in self.options],
            'pricing': self.pricing.to_dict(),
        }


def generate_quote_id(now: Optional[datetime] = None) -> str:
    """``FF-<epoch millis>-<random hex>``; unique without a registry"""
    now = now or datetime.now()
    return f"FF-{int(now.timestamp() * 1000)}-{secrets.token_hex(3).upper()}"


def missing_requirements(state: SelectionState, policy: QuotePolicy = DEFAULT_POLICY) -> List[str]:
    """
    List what still has to be filled in before a quote can be generated.

    Items use the names the UI shows: ``model``, ``options`` and the client
    fields in wire form (``fullName``, ``zip``).

    Args:
        state: Current selection
        policy: Readiness policy

    Returns:
        Missing items in display order, empty when ready
    """
    missing = []
    if state.model is None:
        missing.append('model')
    if policy.require_option and not state.selected_options:
        missing.append('options')
    for attr in policy.required_client_fields:
        value = getattr(state.client, attr, '')
        if not value or not str(value).strip():
            missing.append(CLIENT_WIRE_NAMES.get(attr, attr))
    return missing


def can_generate_quote(state: SelectionState, policy: QuotePolicy = DEFAULT_POLICY) -> bool:
    return not missing_requirements(state, policy)


def assemble_quote(state: SelectionState, policy: QuotePolicy = DEFAULT_POLICY,
                   now: Optional[datetime] = None, logger: logging.Logger = None) -> Quote:
    """
    Freeze the selection into a Quote.

    Args:
        state: Current selection
        policy: Readiness policy
        now: Creation timestamp (defaults to the current time)
        logger: Logger to report on; defaults to this module's

    Returns:
        Quote snapshot

    Raises:
        PreconditionError: If anything required is missing
        ValidationError: If a supplied client field is malformed
    """
    log = logger or logging.getLogger(__name__)

    missing = missing_requirements(state, policy)
    if missing:
        log.info(f"Quote refused, missing: {', '.join(missing)}")
        raise PreconditionError(
            f"Missing required fields: {', '.join(missing)}",
            field=missing[0],
            missing_fields=missing,
        )

    errors = validate_client_info(state.client.to_dict())
    if errors:
        field, message = errors[0]
        raise ValidationError(f"Invalid {field}: {message}", field=field)

    now = now or datetime.now()
    model = state.model
    options = state.selected_options

    quote = Quote(
        quote_id=generate_quote_id(now),
        created_at=now,
        client=replace(state.client),
        model=ModelSnapshot(
            id=model.id,
            code=model.code,
            name=model.name,
            description=model.description,
            base_price=model.base_price,
            specs=model.specs,
            features=tuple(model.features),
        ),
        options=tuple(
            OptionSnapshot(
                id=o.id,
                subject=o.subject,
                name=o.name,
                description=o.description,
                price=o.price,
                is_package=o.is_package,
            )
            for o in options
        ),
        pricing=state.engine.breakdown(model, options, state.delivery_fee),
    )

    log.info(f"Assembled quote {quote.quote_id} for model {model.id} "
             f"({len(quote.options)} options, total {quote.pricing.total:.2f})")
    return quote
