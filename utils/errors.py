from typing import Dict, Optional

class ChatWidgetError(Exception):
    """Base for errors surfaced to the widget with an error code and HTTP status"""

    error_code = "CHAT_WIDGET_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

class MissingCredential(ChatWidgetError):
    error_code = "MISSING_CREDENTIAL"
    status_code = 500

    def __init__(self, variable: str = "GITHUB_TOKEN"):
        super().__init__(
            f"{variable} environment variable is required",
            details={
                "details": "Please check your .env file and restart the server",
                "solution": (
                    f"1. Create a .env file in the project root\n"
                    f"2. Add: {variable}=your_token_here\n"
                    f"3. Restart the server"
                ),
            },
        )

class NotAShopifyStore(ChatWidgetError):
    error_code = "NOT_A_SHOPIFY_STORE"
    status_code = 400

    def __init__(self, store_url: str = ""):
        self.store_url = store_url
        super().__init__(
            "This URL is not a Shopify store. Please provide a valid Shopify store URL "
            "(e.g., mystore.myshopify.com or a custom domain that uses Shopify)."
        )

class StoreUnreachable(ChatWidgetError):
    error_code = "STORE_UNREACHABLE"
    status_code = 400

    def __init__(self, message: Optional[str] = None, store_url: str = ""):
        self.store_url = store_url
        super().__init__(
            message or "Unable to access this store. Please check if the URL is correct "
            "and the store is publicly accessible."
        )

class AllModelsExhausted(ChatWidgetError):
    """Every configured model is blocked or at its daily limit"""

    error_code = "ALL_MODELS_EXHAUSTED"
    status_code = 429

    def __init__(self, usage_summary: str):
        self.usage_summary = usage_summary
        super().__init__(
            f"All models have reached their daily limits. Usage status:\n{usage_summary}\n\n"
            f"Please try again tomorrow or consider upgrading to paid usage.",
            details={"usage_status": usage_summary},
        )

class UpstreamRequestFailed(ChatWidgetError):
    # Timeouts land here too
    error_code = "UPSTREAM_REQUEST_FAILED"
    status_code = 502

    def __init__(self, message: str, model_name: Optional[str] = None):
        self.model_name = model_name
        super().__init__(
            f"Failed to get AI response: {message}",
            details={"model": model_name} if model_name else None,
        )
