import re
import json
import logging
from urllib.parse import urlparse
from typing import Dict, List, Optional, Tuple
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Feed prices above this are assumed to be IDR and converted to USD
IDR_PRICE_THRESHOLD = 50000
IDR_PER_USD = 15500

class ValidationHelpers:
    """Data validation utility functions"""

    @staticmethod
    def validate_url(url: str) -> bool:
        """Validate URL format"""
        try:
            result = urlparse(url)
            return all([
                result.scheme in ('http', 'https'),
                result.netloc,
                not re.search(r'\s', result.netloc)
            ])
        except Exception:
            return False

    @staticmethod
    def normalize_store_url(url) -> str:
        """mystore.myshopify.com -> https://mystore.myshopify.com"""
        if not isinstance(url, str):
            return ""

        url = url.strip()
        if url and not url.startswith(('http://', 'https://')):
            url = 'https://' + url

        return url

    @staticmethod
    def sanitize_input(text: str, max_length: int = 4000) -> str:
        """
        Sanitize user input

        Args:
            text: Input text to sanitize
            max_length: Maximum allowed length

        Returns:
            Sanitized text
        """
        if not text:
            return ""

        # Remove null bytes and control characters
        text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)

        text = text.strip()

        if len(text) > max_length:
            text = text[:max_length]

        return text

    @staticmethod
    def validate_messages(messages) -> Tuple[bool, str]:
        """Check a conversation is a list of {role, content} turns"""
        if not isinstance(messages, list):
            return False, "messages must be a list"

        for i, message in enumerate(messages):
            if not isinstance(message, dict):
                return False, f"Message {i} must be an object"
            if message.get('role') not in ('user', 'assistant'):
                return False, f"Message {i} has invalid role: {message.get('role')}"
            if not isinstance(message.get('content'), str):
                return False, f"Message {i} content must be a string"

        return True, ""

class DateTimeHelpers:
    """Date and time utility functions"""

    @staticmethod
    def get_current_timestamp() -> str:
        """Get current UTC timestamp in ISO format"""
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def get_today() -> str:
        """Local calendar date used for daily quota rollover"""
        return datetime.now().date().isoformat()

class ResponseHelpers:
    """API response formatting utilities"""

    @staticmethod
    def success_response(data: Dict = None, message: str = "Success") -> Dict:
        """Format success response"""
        response = {
            "success": True,
            "message": message,
            "timestamp": DateTimeHelpers.get_current_timestamp()
        }

        if data:
            response.update(data)

        return response

    @staticmethod
    def error_response(message: str, error_code: str = None, details: Dict = None) -> Dict:
        """Format error response"""
        response = {
            "success": False,
            "error": message,
            "timestamp": DateTimeHelpers.get_current_timestamp()
        }

        if error_code:
            response["error_code"] = error_code

        if details:
            response["details"] = details

        return response

class LoggingHelpers:
    """Logging and monitoring utilities"""

    @staticmethod
    def log_api_request(method: str, endpoint: str, action: str = None,
                       status_code: int = None, response_time: float = None):
        """Log API request details"""
        log_data = {
            "method": method,
            "endpoint": endpoint,
            "action": action,
            "status_code": status_code,
            "response_time_ms": response_time,
            "timestamp": DateTimeHelpers.get_current_timestamp()
        }

        logger.info(f"API Request: {json.dumps(log_data)}")

    @staticmethod
    def log_model_blocked(model_name: str, reason: str, current: int, limit: int):
        """Log a model being taken out of rotation for the day"""
        log_data = {
            "event_type": "MODEL_BLOCKED",
            "model": model_name,
            "reason": reason,
            "current_requests": current,
            "limit": limit,
            "timestamp": DateTimeHelpers.get_current_timestamp()
        }

        logger.warning(f"Quota Event: {json.dumps(log_data)}")

class DataHelpers:
    """Data processing and formatting utilities"""

    @staticmethod
    def strip_html(text: str) -> str:
        """Remove HTML tags from a product description"""
        if not text:
            return ""
        return re.sub(r'<[^>]+>', '', text)

    @staticmethod
    def truncate_text(text: str, max_length: int = 50, suffix: str = "...") -> str:
        """Cut text to max_length characters and append suffix"""
        if not text:
            return ""

        return text[:max_length] + suffix

    @staticmethod
    def format_price_for_ai(price) -> str:
        """
        Normalize a feed price for the model prompt

        Args:
            price: Price as string or number, may be empty

        Returns:
            Price with two decimals, or the input unchanged if not numeric
        """
        if price is None or price == '':
            return ''

        try:
            num_price = float(price)
        except (TypeError, ValueError):
            return str(price)

        if num_price != num_price:
            return str(price)

        if num_price > IDR_PRICE_THRESHOLD:
            num_price = num_price / IDR_PER_USD

        return f"{num_price:.2f}"

    @staticmethod
    def extract_store_name(url: str) -> str:
        """mystore.myshopify.com -> Mystore"""
        try:
            hostname = urlparse(url).hostname
            if not hostname:
                return "Unknown Store"

            store_name = hostname.split('.')[0]
            return store_name[:1].upper() + store_name[1:]
        except Exception:
            return "Unknown Store"

    @staticmethod
    def extract_product_block(content: str) -> Tuple[Optional[List[Dict]], str]:
        """
        Split a model reply into its leading product block and the remaining text

        Args:
            content: Raw completion text

        Returns:
            (products, rest) when a {"products": [...]} object is found,
            otherwise (None, content)
        """
        if not content:
            return None, content or ""

        cleaned = re.sub(r'```json|```', '', content)
        cleaned = re.sub(r'\n\s*', '\n', cleaned).strip()

        start = cleaned.find('{')
        if start == -1:
            return None, content

        depth = 0
        end = -1
        for i in range(start, len(cleaned)):
            if cleaned[i] == '{':
                depth += 1
            elif cleaned[i] == '}':
                depth -= 1
            if depth == 0:
                end = i + 1
                break

        if end == -1:
            return None, content

        try:
            block = json.loads(cleaned[start:end])
        except json.JSONDecodeError:
            logger.debug("Product block is not valid JSON, returning reply as text")
            return None, content

        if isinstance(block, dict) and isinstance(block.get('products'), list):
            return DataHelpers.dedupe_products(block['products']), cleaned[end:].strip()

        return None, content

    @staticmethod
    def dedupe_products(products: List[Dict]) -> List[Dict]:
        """Drop repeated product cards, keyed by url or name + category"""
        unique = {}
        for product in products:
            if not isinstance(product, dict):
                continue
            key = product.get('url') or f"{product.get('name', '')}{product.get('category') or ''}"
            unique[key] = product
        return list(unique.values())

# Convenience function exports
def validate_request_data(data: Dict, required_fields: List[str]) -> tuple[bool, str]:
    """Validate request contains required fields"""
    if not data:
        return False, "Request data is required"

    for field in required_fields:
        if field not in data or data[field] is None:
            return False, f"Missing required field: {field}"

        if field == 'storeUrl' and not ValidationHelpers.validate_url(data[field]):
            return False, "Invalid store URL format"

        if field == 'messages':
            valid, error = ValidationHelpers.validate_messages(data[field])
            if not valid:
                return False, error

    return True, ""
