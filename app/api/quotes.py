"""
Quote Builder Routes Blueprint

Handles catalog browsing, the per-session selection and quote output:
- /api/catalog/*: Models and grouped options
- /api/selection/*: Current model, options and client details
- /api/pricing, /api/delivery/quote, /api/financing/monthly: Stateless pricing
- /api/quote, /api/quote/pdf: Frozen quote as JSON or PDF download
"""

import io
import secrets
from flask import Blueprint, request, jsonify, send_file, session, current_app
import logging

from app_init import get_quote_services
from services.pricing import ComputationError
from services.quote_assembler import assemble_quote, missing_requirements
from services.quote_pdf import RenderCancelled, RenderError, quote_filename
from services.selection import SelectionState
from validators import (
    ValidationError, format_validation_error, format_success_response,
    parse_amount, sanitize_filename, validate_number_range, validate_pricing_request, validate_zip,
)

logger = logging.getLogger(__name__)

# Create blueprint
quotes_bp = Blueprint('quotes_bp', __name__)

SESSION_KEY = 'selection'
RENDER_TIMEOUT_SECONDS = 60
MAX_TERM_YEARS = 40


def get_services():
    """Services attached to the app by create_app"""
    return get_quote_services(current_app)


def load_selection() -> SelectionState:
    services = get_services()
    return SelectionState.from_dict(session.get(SESSION_KEY), services.catalog, services.engine)


def save_selection(state: SelectionState):
    session[SESSION_KEY] = state.to_dict()


def selection_response(state: SelectionState, message: str = "Success"):
    missing = missing_requirements(state, get_services().policy)
    data = state.to_response()
    data['canGenerateQuote'] = not missing
    data['missing'] = missing
    return jsonify(format_success_response(data, message))


def not_found(message: str):
    return jsonify({'success': False, 'error': 'Not Found', 'message': message}), 404


def render_key() -> str:
    return session.setdefault('sid', secrets.token_hex(8))


# ============================================================================
# ERROR MAPPING
# ============================================================================

@quotes_bp.errorhandler(ValidationError)
def handle_validation_error(error):
    missing = error.missing_fields or None
    return jsonify(format_validation_error(error.field, error.message, missing)), 400


@quotes_bp.errorhandler(ComputationError)
def handle_computation_error(error):
    logger.warning(f"Pricing computation failed: {error.message}")
    return jsonify({
        'success': False,
        'error': 'Computation Error',
        'field': error.field,
        'message': error.message,
    }), 422


@quotes_bp.errorhandler(RenderError)
def handle_render_error(error):
    return jsonify({
        'success': False,
        'error': 'Render Error',
        'message': 'The quote PDF could not be generated. Please try again.',
        'retryable': True,
    }), 502


@quotes_bp.errorhandler(RenderCancelled)
def handle_render_cancelled(error):
    return jsonify({
        'success': False,
        'error': 'Render Cancelled',
        'message': str(error),
    }), 409


# ============================================================================
# CATALOG
# ============================================================================

@quotes_bp.route('/api/catalog/models', methods=['GET'])
def list_models():
    """All models, in catalog order"""
    models = get_services().catalog.get_models()
    return jsonify({'success': True, 'models': [m.to_dict() for m in models]})


@quotes_bp.route('/api/catalog/options', methods=['GET'])
def list_options():
    """Options grouped by subject"""
    return jsonify({'success': True, 'categories': get_services().catalog.to_dict()['categories']})


# ============================================================================
# SELECTION
# ============================================================================

@quotes_bp.route('/api/selection', methods=['GET'])
def get_selection():
    return selection_response(load_selection())


@quotes_bp.route('/api/selection/model', methods=['POST'])
def select_model():
    """Choose a model; clears any selected options"""
    data = request.get_json(silent=True) or {}
    model_id = data.get('model_id') or data.get('modelId')
    if not model_id:
        raise ValidationError("model_id is required", field='model_id')

    model = get_services().catalog.find_model(model_id)
    if model is None:
        return not_found(f"Unknown model: {model_id}")

    state = load_selection()
    state.select_model(model)
    save_selection(state)
    return selection_response(state, f"Selected {model.name}")


@quotes_bp.route('/api/selection/options/<option_id>/toggle', methods=['POST'])
def toggle_option(option_id):
    option = get_services().catalog.find_option(option_id)
    if option is None:
        return not_found(f"Unknown option: {option_id}")

    state = load_selection()
    if state.model is None:
        raise ValidationError("Select a model before choosing options", field='model',
                              missing_fields=['model'])

    selected = state.toggle_option(option)
    save_selection(state)
    return selection_response(state, f"{option.name} {'added' if selected else 'removed'}")


@quotes_bp.route('/api/selection/client', methods=['POST'])
def update_client():
    """Update one or more client fields; a ZIP change re-prices delivery"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    state = load_selection()
    for name, value in data.items():
        try:
            state.update_client_field(name, value)
        except ValueError as e:
            raise ValidationError(str(e), field=name)

    save_selection(state)
    return selection_response(state, "Client details updated")


@quotes_bp.route('/api/selection/reset', methods=['POST'])
def reset_selection():
    state = load_selection()
    state.reset()
    save_selection(state)
    return selection_response(state, "Selection cleared")


# ============================================================================
# STATELESS PRICING
# ============================================================================

@quotes_bp.route('/api/pricing', methods=['POST'])
def price_selection():
    """Price a model and options without touching the session"""
    data = request.get_json(silent=True) or {}
    is_valid, error = validate_pricing_request(data)
    if not is_valid:
        raise ValidationError(error)

    services = get_services()
    model = services.catalog.find_model(data['model_id'])
    if model is None:
        return not_found(f"Unknown model: {data['model_id']}")

    options = []
    for option_id in dict.fromkeys(data.get('option_ids', [])):
        option = services.catalog.find_option(option_id)
        if option is None:
            return not_found(f"Unknown option: {option_id}")
        options.append(option)

    breakdown = services.engine.price(model, options, data.get('zip'))
    return jsonify(format_success_response(breakdown.to_dict()))


@quotes_bp.route('/api/delivery/quote', methods=['GET'])
def delivery_quote():
    zip_code = request.args.get('zip', '').strip()
    is_valid, error = validate_zip(zip_code)
    if not is_valid:
        raise ValidationError(error, field='zip')

    policy = get_services().engine.delivery_policy
    return jsonify(format_success_response(policy.describe(zip_code)))


@quotes_bp.route('/api/financing/monthly', methods=['GET'])
def financing_monthly():
    """Monthly payment for ?total=, with optional apr= and years= overrides"""
    engine = get_services().engine
    total = parse_amount(request.args.get('total'), 'total')
    apr = request.args.get('apr')
    years = request.args.get('years')
    apr = engine.config.financing_apr if apr is None else parse_amount(apr, 'apr')
    years = engine.config.financing_term_years if years is None else parse_amount(years, 'years')
    is_valid, error = validate_number_range(years, 0, MAX_TERM_YEARS)
    if not is_valid:
        raise ValidationError(f"Invalid years: {error}", field='years')

    monthly = engine.compute_monthly_payment(total, apr, years)
    return jsonify(format_success_response({
        'total': total,
        'apr': apr,
        'termMonths': max(1, round(years * 12)),
        'monthlyPayment': monthly,
    }))


# ============================================================================
# QUOTE OUTPUT
# ============================================================================

@quotes_bp.route('/api/quote', methods=['POST'])
def generate_quote():
    """Freeze the current selection into a quote"""
    quote = assemble_quote(load_selection(), get_services().policy)
    return jsonify(format_success_response(quote.to_dict(), "Quote generated"))


@quotes_bp.route('/api/quote/pdf', methods=['POST'])
def generate_quote_pdf():
    """Freeze the current selection and return it as a PDF download"""
    services = get_services()
    data = request.get_json(silent=True) or {}

    quote = assemble_quote(load_selection(), services.policy)
    pdf_bytes = services.renderer.render(quote, key=render_key(), timeout=RENDER_TIMEOUT_SECONDS)

    if data.get('filename'):
        filename = sanitize_filename(data['filename'])
    else:
        filename = quote_filename(quote)

    logger.info(f"Quote PDF {quote.quote_id} sent as {filename}")
    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=filename,
    )
