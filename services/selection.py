"""
Selection State - the customer's in-progress choices for one quote session.

Holds the chosen model, the chosen options (keyed by id, kept in the order
they were picked for display) and the client's contact/delivery details.
Pricing is recomputed in full after every change and listeners are told
about it; changing the model clears options and zeroes the delivery fee.
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import Callable, Dict, List, Optional

from services.catalog import Catalog, Model, Option
from services.pricing import PricingBreakdown, PricingEngine
from validators import sanitize_string, MAX_ADDRESS_LENGTH, MAX_NAME_LENGTH, MAX_NOTES_LENGTH

logger = logging.getLogger(__name__)

# Wire (JSON / form) names accepted for each client field
CLIENT_FIELD_ALIASES = {
    'fullName': 'full_name',
    'name': 'full_name',
    'zipCode': 'zip',
    'preferredDate': 'preferred_date',
}

# Names used when reporting fields back to the UI
CLIENT_WIRE_NAMES = {
    'full_name': 'fullName',
    'phone': 'phone',
    'email': 'email',
    'address': 'address',
    'zip': 'zip',
    'preferred_date': 'preferredDate',
    'notes': 'notes',
}

_FIELD_LIMITS = {
    'full_name': MAX_NAME_LENGTH,
    'address': MAX_ADDRESS_LENGTH,
    'notes': MAX_NOTES_LENGTH,
}


@dataclass(frozen=True)
class ClientInfo:
    """Contact and delivery details entered by the customer."""
    full_name: str = ''
    phone: str = ''
    email: str = ''
    address: str = ''
    zip: str = ''
    preferred_date: str = ''
    notes: str = ''

    @staticmethod
    def field_name(name: str) -> str:
        """Resolve a wire or attribute name to the attribute name"""
        attr = CLIENT_FIELD_ALIASES.get(name, name)
        if attr not in CLIENT_WIRE_NAMES:
            raise ValueError(f"Unknown client field: {name}")
        return attr

    @classmethod
    def from_dict(cls, data: Dict) -> 'ClientInfo':
        values = {}
        for key, value in (data or {}).items():
            try:
                attr = cls.field_name(key)
            except ValueError:
                continue
            values[attr] = sanitize_string(value, _FIELD_LIMITS.get(attr, 200))
        return cls(**values)

    def to_dict(self) -> Dict:
        return {CLIENT_WIRE_NAMES[f.name]: getattr(self, f.name) for f in fields(self)}


Listener = Callable[['SelectionState', str], None]


class SelectionState:
    """Mutable selection for a single session."""

    def __init__(self, engine: PricingEngine, listeners: Optional[List[Listener]] = None,
                 logger: logging.Logger = None):
        self.engine = engine
        self.logger = logger or logging.getLogger(__name__)
        self._model: Optional[Model] = None
        self._options: Dict[str, Option] = {}
        self._client = ClientInfo()
        self._delivery_fee = 0.0
        self._listeners: List[Listener] = list(listeners or [])
        self._pricing = self._recompute()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def model(self) -> Optional[Model]:
        return self._model

    @property
    def selected_options(self) -> List[Option]:
        return list(self._options.values())

    @property
    def client(self) -> ClientInfo:
        return self._client

    @property
    def delivery_fee(self) -> float:
        return self._delivery_fee

    @property
    def pricing(self) -> PricingBreakdown:
        return self._pricing

    def is_selected(self, option_id: str) -> bool:
        return option_id in self._options

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def select_model(self, model: Model):
        """Switch model; previously selected options and delivery fee are reset."""
        self._model = model
        self._options.clear()
        self._delivery_fee = 0.0
        self._changed('model')

    def toggle_option(self, option: Option) -> bool:
        """
        Select the option if it isn't selected, otherwise deselect it.

        Returns:
            True if the option is selected after the call
        """
        if option.id in self._options:
            del self._options[option.id]
            selected = False
        else:
            self._options[option.id] = option
            selected = True
        self._changed('options')
        return selected

    def update_client_field(self, name: str, value) -> ClientInfo:
        """Set one client field; a ZIP change recomputes the delivery fee."""
        attr = ClientInfo.field_name(name)
        value = sanitize_string(value, _FIELD_LIMITS.get(attr, 200))
        self._client = replace(self._client, **{attr: value})
        if attr == 'zip':
            self._delivery_fee = self.engine.compute_delivery_fee(value)
        self._changed(attr)
        return self._client

    def update_client(self, data: Dict) -> ClientInfo:
        for name, value in (data or {}).items():
            self.update_client_field(name, value)
        return self._client

    def reset(self):
        self._model = None
        self._options.clear()
        self._client = ClientInfo()
        self._delivery_fee = 0.0
        self._changed('reset')

    def _recompute(self) -> PricingBreakdown:
        return self.engine.breakdown(self._model, self._options.values(), self._delivery_fee)

    def _changed(self, reason: str):
        self._pricing = self._recompute()
        self.logger.debug(f"Selection changed ({reason}): total={self._pricing.total:.2f}")
        for listener in list(self._listeners):
            listener(self, reason)

    # ------------------------------------------------------------------
    # Session persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict:
        """Ids-only form suitable for the Flask session cookie"""
        return {
            'model_id': self._model.id if self._model else None,
            'option_ids': list(self._options),
            'client': self._client.to_dict(),
            'delivery_fee': self._delivery_fee,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict], catalog: Catalog, engine: PricingEngine,
                  listeners: Optional[List[Listener]] = None) -> 'SelectionState':
        """Rebuild a selection saved with ``to_dict``; unknown ids are dropped"""
        state = cls(engine, listeners=listeners)
        data = data or {}

        model_id = data.get('model_id')
        if model_id:
            state._model = catalog.find_model(model_id)
            if state._model is None:
                logger.info(f"Dropping unknown model {model_id!r} from session")

        for option_id in data.get('option_ids') or []:
            option = catalog.find_option(option_id)
            if option is not None:
                state._options[option.id] = option

        state._client = ClientInfo.from_dict(data.get('client'))
        try:
            state._delivery_fee = float(data.get('delivery_fee') or 0.0)
        except (TypeError, ValueError):
            state._delivery_fee = engine.compute_delivery_fee(state._client.zip)

        state._pricing = state._recompute()
        return state

    def to_response(self) -> Dict:
        """Selection plus current pricing, for API responses"""
        return {
            'model': self._model.to_dict() if self._model else None,
            'options': [o.to_dict() for o in self._options.values()],
            'client': self._client.to_dict(),
            'pricing': self._pricing.to_dict(),
        }
