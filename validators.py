"""
Input Validation & Sanitization Utilities
Provides validation for quote builder requests, client details and money values
"""
import math
import re
from typing import Dict, Any, List, Optional, Tuple
from werkzeug.utils import secure_filename
import logging

logger = logging.getLogger(__name__)

# Regex patterns
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\+?1?\d{9,15}$')
ZIP_PATTERN = re.compile(r'^\d{5}(-\d{4})?$')
IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$')
DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

MAX_NAME_LENGTH = 200
MAX_ADDRESS_LENGTH = 500
MAX_NOTES_LENGTH = 2000


class ValidationError(Exception):
    """Custom exception for validation errors"""
    def __init__(self, message: str, field: Optional[str] = None,
                 missing_fields: Optional[List[str]] = None):
        self.message = message
        self.field = field
        self.missing_fields = list(missing_fields or [])
        super().__init__(self.message)


def validate_required_fields(data: Dict[str, Any], required_fields: List[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate that all required fields are present in the data

    Args:
        data: Dictionary of input data
        required_fields: List of required field names

    Returns:
        Tuple of (is_valid, error_message)
    """
    missing_fields = find_missing_fields(data, required_fields)

    if missing_fields:
        return False, f"Missing required fields: {', '.join(missing_fields)}"

    return True, None


def find_missing_fields(data: Dict[str, Any], required_fields: List[str]) -> List[str]:
    """Names from ``required_fields`` that are absent, None or blank in ``data``"""
    missing = []
    for field in required_fields:
        value = data.get(field) if data else None
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)
    return missing


def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """
    Validate email format

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not email or not isinstance(email, str):
        return False, "Email must be a non-empty string"

    if len(email) > 254:  # RFC 5321
        return False, "Email address too long"

    if not EMAIL_PATTERN.match(email):
        return False, "Invalid email format"

    return True, None


def validate_phone(phone: str) -> Tuple[bool, Optional[str]]:
    """
    Validate phone number format

    Args:
        phone: Phone number to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone or not isinstance(phone, str):
        return False, "Phone must be a non-empty string"

    # Remove common separators
    cleaned_phone = re.sub(r'[\s\-\(\)\.]', '', phone)

    if not PHONE_PATTERN.match(cleaned_phone):
        return False, "Invalid phone number format"

    return True, None


def validate_zip(zip_code: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a US ZIP or ZIP+4 code

    Args:
        zip_code: ZIP code to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not zip_code or not isinstance(zip_code, str):
        return False, "ZIP code must be a non-empty string"

    if not ZIP_PATTERN.match(zip_code.strip()):
        return False, "Invalid ZIP code format"

    return True, None


def validate_string_length(value: str, min_length: int = 0, max_length: int = 1000) -> Tuple[bool, Optional[str]]:
    """
    Validate string length is within acceptable range

    Args:
        value: String to validate
        min_length: Minimum allowed length
        max_length: Maximum allowed length

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, "Value must be a string"

    if len(value) < min_length:
        return False, f"Value too short (minimum {min_length} characters)"

    if len(value) > max_length:
        return False, f"Value too long (maximum {max_length} characters)"

    return True, None


def validate_number_range(value: float, min_value: Optional[float] = None, max_value: Optional[float] = None) -> Tuple[bool, Optional[str]]:
    """
    Validate number is within acceptable range

    Args:
        value: Number to validate
        min_value: Minimum allowed value
        max_value: Maximum allowed value

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, "Value must be a number"

    if math.isnan(value) or math.isinf(value):
        return False, "Value must be a finite number"

    if min_value is not None and value < min_value:
        return False, f"Value too small (minimum {min_value})"

    if max_value is not None and value > max_value:
        return False, f"Value too large (maximum {max_value})"

    return True, None


def parse_amount(value: Any, field: str) -> float:
    """
    Coerce a request value into a finite float

    Raises:
        ValidationError: If the value is missing or not a finite number
    """
    if isinstance(value, bool) or value is None or value == '':
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{field} must be a finite number", field=field)
    return number


def validate_identifier(value: Any) -> Tuple[bool, Optional[str]]:
    """Validate a catalog identifier (model id, option id)"""
    if not value or not isinstance(value, str):
        return False, "Identifier must be a non-empty string"

    if not IDENTIFIER_PATTERN.match(value):
        return False, "Invalid identifier"

    return True, None


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """
    Sanitize string input by removing potentially dangerous characters

    Args:
        value: String to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized string
    """
    if value is None:
        return ''

    if not isinstance(value, str):
        value = str(value)

    # Remove null bytes
    sanitized = value.replace('\x00', '')

    # Trim whitespace
    sanitized = sanitized.strip()

    # Limit length
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def sanitize_filename(filename: str, default: str = 'quote.pdf') -> str:
    """
    Sanitize a download filename and make sure it ends in .pdf

    Args:
        filename: Requested filename

    Returns:
        Sanitized filename
    """
    # Use werkzeug's secure_filename
    safe_name = secure_filename(filename or '')

    # If secure_filename removes everything, fall back to the default name
    if not safe_name:
        safe_name = default

    if not safe_name.lower().endswith('.pdf'):
        safe_name = f"{safe_name}.pdf"

    return safe_name


def validate_client_info(data: Dict[str, Any]) -> List[Tuple[str, str]]:
    """
    Format-check the optional client fields that are present

    Required-field presence is the readiness check's job; this only rejects
    values that are present but malformed.

    Args:
        data: Client fields keyed by wire name (fullName, email, phone, zip, ...)

    Returns:
        List of (field, error_message) pairs, empty when everything is valid
    """
    errors = []

    if data.get('email'):
        is_valid, error = validate_email(data['email'])
        if not is_valid:
            errors.append(('email', error))

    if data.get('phone'):
        is_valid, error = validate_phone(data['phone'])
        if not is_valid:
            errors.append(('phone', error))

    if data.get('zip'):
        is_valid, error = validate_zip(data['zip'])
        if not is_valid:
            errors.append(('zip', error))

    if data.get('fullName'):
        is_valid, error = validate_string_length(data['fullName'], max_length=MAX_NAME_LENGTH)
        if not is_valid:
            errors.append(('fullName', error))

    if data.get('address'):
        is_valid, error = validate_string_length(data['address'], max_length=MAX_ADDRESS_LENGTH)
        if not is_valid:
            errors.append(('address', error))

    if data.get('notes'):
        is_valid, error = validate_string_length(data['notes'], max_length=MAX_NOTES_LENGTH)
        if not is_valid:
            errors.append(('notes', error))

    if data.get('preferredDate') and not DATE_PATTERN.match(str(data['preferredDate'])):
        errors.append(('preferredDate', "Preferred date must be YYYY-MM-DD"))

    return errors


def validate_pricing_request(data: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate a stateless pricing request body

    Args:
        data: Request data dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_required_fields(data, ['model_id'])
    if not is_valid:
        return False, error

    is_valid, error = validate_identifier(data['model_id'])
    if not is_valid:
        return False, f"Invalid model_id: {error}"

    option_ids = data.get('option_ids', [])
    if not isinstance(option_ids, list):
        return False, "option_ids must be an array"

    for idx, option_id in enumerate(option_ids):
        is_valid, error = validate_identifier(option_id)
        if not is_valid:
            return False, f"Option {idx} invalid id: {error}"

    if data.get('zip'):
        is_valid, error = validate_zip(data['zip'])
        if not is_valid:
            return False, f"Invalid zip: {error}"

    return True, None


def format_validation_error(field: Optional[str], message: str, missing: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Format validation error for consistent API responses

    Args:
        field: Field name that failed validation
        message: Error message
        missing: Required items that are still missing, if any

    Returns:
        Error response dictionary
    """
    response = {
        'success': False,
        'error': 'Validation Error',
        'field': field,
        'message': message
    }
    if missing is not None:
        response['missing'] = list(missing)
    return response


def format_success_response(data: Any, message: str = "Success") -> Dict[str, Any]:
    """
    Format success response for consistent API responses

    Args:
        data: Response data
        message: Success message

    Returns:
        Success response dictionary
    """
    return {
        'success': True,
        'message': message,
        'data': data
    }
