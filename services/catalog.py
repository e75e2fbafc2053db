"""
Catalog Service - home models and optional add-ons/packages.

The catalog is read-only to the quote builder. It is loaded once from the
data folder (models.json and options.json) and handed to the routes and the
selection state. A missing or broken file gives an empty list for that half
of the catalog; it never raises.
"""

import json
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.utils.helpers import load_json_file

logger = logging.getLogger(__name__)

MODELS_FILE = 'models.json'
OPTIONS_FILE = 'options.json'


@dataclass(frozen=True)
class ModelSpecs:
    length: str = ''
    width: str = ''
    height: str = ''
    weight: str = ''
    bedrooms: int = 0
    bathrooms: float = 0

    def to_dict(self) -> Dict:
        return {
            'length': self.length,
            'width': self.width,
            'height': self.height,
            'weight': self.weight,
            'bedrooms': self.bedrooms,
            'bathrooms': self.bathrooms,
        }


@dataclass(frozen=True)
class Model:
    """A purchasable home configuration."""
    id: str
    code: str
    name: str
    base_price: float
    description: str = ''
    specs: ModelSpecs = field(default_factory=ModelSpecs)
    features: Tuple[str, ...] = ()
    images: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict) -> 'Model':
        specs = data.get('specs') or {}
        base_price = float(data['basePrice'] if 'basePrice' in data else data['base_price'])
        if math.isnan(base_price) or math.isinf(base_price) or base_price < 0:
            raise ValueError(f"invalid base price {base_price!r}")
        return cls(
            id=str(data['id']),
            code=str(data.get('code') or data.get('subtitle') or data['id']),
            name=str(data['name']),
            base_price=base_price,
            description=data.get('description') or '',
            specs=ModelSpecs(
                length=str(specs.get('length', '')),
                width=str(specs.get('width', '')),
                height=str(specs.get('height', '')),
                weight=str(specs.get('weight', '')),
                bedrooms=specs.get('bedrooms', 0),
                bathrooms=specs.get('bathrooms', 0),
            ),
            features=tuple(data.get('features') or ()),
            images=tuple(data.get('images') or ()),
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'basePrice': self.base_price,
            'description': self.description,
            'specs': self.specs.to_dict(),
            'features': list(self.features),
            'images': list(self.images),
        }


@dataclass(frozen=True)
class Option:
    """An add-on or package. ``price`` may be negative (omit/credit items)."""
    id: str
    subject: str
    name: str
    price: float
    description: str = ''
    is_package: bool = False

    @classmethod
    def from_dict(cls, data: Dict, subject: str) -> 'Option':
        price = float(data['price'])
        if math.isnan(price) or math.isinf(price):
            raise ValueError(f"invalid price {price!r}")
        return cls(
            id=str(data['id']),
            subject=subject,
            name=str(data['name']),
            price=price,
            description=data.get('description') or '',
            is_package=bool(data.get('isPackage', data.get('is_package', False))),
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'subject': self.subject,
            'name': self.name,
            'price': self.price,
            'description': self.description,
            'isPackage': self.is_package,
        }


class Catalog:
    """In-memory catalog of models and options grouped by subject."""

    def __init__(self, models: List[Model] = None, options: List[Option] = None):
        self._models: Dict[str, Model] = {}
        for model in models or []:
            if model.id in self._models:
                logger.warning(f"Duplicate model id {model.id!r} ignored")
                continue
            self._models[model.id] = model

        self._options: Dict[str, Option] = {}
        for option in options or []:
            existing = self._options.get(option.id)
            if existing is not None:
                # An option belongs to exactly one subject: first one wins
                logger.warning(
                    f"Option {option.id!r} listed under {existing.subject!r} "
                    f"and {option.subject!r}; keeping {existing.subject!r}"
                )
                continue
            self._options[option.id] = option

    def __len__(self):
        return len(self._models) + len(self._options)

    @property
    def is_loaded(self) -> bool:
        return bool(self._models)

    def get_models(self) -> List[Model]:
        return list(self._models.values())

    def get_options(self) -> Dict[str, List[Option]]:
        """Options grouped by subject, in catalog order."""
        grouped: Dict[str, List[Option]] = {}
        for option in self._options.values():
            grouped.setdefault(option.subject, []).append(option)
        return grouped

    def find_model(self, model_id: str) -> Optional[Model]:
        model = self._models.get(model_id)
        if model is not None:
            return model
        # Fall back to the model code (APS-630) used on printed material
        for candidate in self._models.values():
            if candidate.code.lower() == str(model_id).lower():
                return candidate
        return None

    def find_option(self, option_id: str) -> Optional[Option]:
        return self._options.get(option_id)

    def to_dict(self) -> Dict:
        return {
            'models': [m.to_dict() for m in self.get_models()],
            'categories': [
                {'subject': subject, 'items': [o.to_dict() for o in items]}
                for subject, items in self.get_options().items()
            ],
        }


def _read_json(path: str, default):
    try:
        return load_json_file(path, default)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read catalog file {path}: {e}")
        return default


def _parse_models(raw) -> List[Model]:
    if not isinstance(raw, list):
        logger.warning("models.json must contain a list of models")
        return []

    models = []
    for idx, item in enumerate(raw):
        try:
            models.append(Model.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping model #{idx}: {e}")
    return models


def _parse_options(raw) -> List[Option]:
    categories = raw.get('categories') if isinstance(raw, dict) else raw
    if not isinstance(categories, list):
        logger.warning("options.json must contain a list of categories")
        return []

    options = []
    for category in categories:
        if not isinstance(category, dict):
            continue
        subject = category.get('subject') or 'Other'
        for idx, item in enumerate(category.get('items') or []):
            try:
                options.append(Option.from_dict(item, subject))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping option #{idx} in {subject!r}: {e}")
    return options


def load_catalog(data_folder: str) -> Catalog:
    """
    Load the catalog from ``data_folder``.

    Args:
        data_folder: Directory holding models.json and options.json

    Returns:
        Catalog (possibly empty)
    """
    models = _parse_models(_read_json(os.path.join(data_folder, MODELS_FILE), []))
    options = _parse_options(_read_json(os.path.join(data_folder, OPTIONS_FILE), {}))

    if not models:
        logger.warning(f"No models loaded from {data_folder}")

    catalog = Catalog(models, options)
    logger.info(f"Catalog loaded: {len(catalog.get_models())} models, "
                f"{sum(len(v) for v in catalog.get_options().values())} options")
    return catalog
