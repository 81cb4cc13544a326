import json
import logging
import threading
from typing import Dict, List, Optional

from models.model_config import ModelDescriptor
from models.usage import build_usage_store
from services.inference_client import InferenceClient
from services.model_dispatcher import ModelDispatcher
from services.shopify_store_service import ShopifyStoreService
from utils.helpers import DataHelpers, ValidationHelpers

logger = logging.getLogger(__name__)

# Only the most recent turns are sent to keep within model context limits
MAX_HISTORY_MESSAGES = 6
# Products included in the prompt catalog excerpt
MAX_PROMPT_PRODUCTS = 5
PROMPT_DESCRIPTION_LENGTH = 50

BASE_SYSTEM_PROMPT = """
You are a friendly and helpful AI shopping assistant. Your role is to help customers find products they're looking for on their Shopify store.

**Your Personality:**
- Be warm, conversational, and natural in your responses
- Ask follow-up questions to better understand what they need
- Use casual, friendly language like you're talking to a friend
- Show enthusiasm about helping them find the perfect product
- Be patient and helpful, even if they're not sure what they want

**Your Capabilities:**
- Help customers find specific products
- Suggest alternatives if something isn't available
- Answer questions about product features, pricing, and availability
- Help with sizing, colors, and other product details
- Provide shopping recommendations based on their needs
- Help with the shopping process and checkout

**Conversation Style:**
- Use natural language and avoid robotic responses
- Ask clarifying questions when needed
- Provide helpful suggestions and alternatives
- Be encouraging and supportive
- Use emojis occasionally to make conversations more friendly

**Product Card Format:**
If you mention or recommend specific products, always include a JSON block in your response with this format:
{
  "products": [
    {
      "name": "Product Name",
      "image": "https://example.com/image.jpg",
      "description": "Short description of the product.",
      "url": "https://shop.com/product-url",
      "salePrice": "$19.99",
      "actualPrice": "$24.99",
      "category": "Socks"
    }
  ]
}
- The JSON block should be valid and appear in the message before your reply text.
- If any field is not available, set it to null or an empty string.
- Only recommend products that have a non-empty image field. Ignore products with no image.
- Never use code blocks (triple backticks) when outputting the product JSON. Output the JSON as plain text at the start of your message.
- The rest of your reply should be a friendly, helpful message as usual.

Always maintain a helpful, friendly tone and focus on making the shopping experience enjoyable and easy for the customer.
"""

NO_STORE_NOTE = "\n\n**Note:** No store has been set yet. Please ask the user to provide their Shopify store URL first."

class ChatService:
    def __init__(self, client=None, dispatcher: Optional[ModelDispatcher] = None,
                 store_service: Optional[ShopifyStoreService] = None):
        self.client = client or InferenceClient()
        self.dispatcher = dispatcher or ModelDispatcher(client=self.client, store=build_usage_store())
        self.store_service = store_service or ShopifyStoreService()
        self.store_info: Optional[Dict] = None

    # Store connection

    def set_store(self, store_url: str) -> Dict:
        """Connect a store; the previous store stays set if this one fails"""
        self.store_info = self.store_service.connect(store_url)
        return self.store_info

    def has_store(self) -> bool:
        return self.store_info is not None

    # Prompt

    def build_system_prompt(self) -> str:
        prompt = BASE_SYSTEM_PROMPT

        if not self.has_store():
            return prompt + NO_STORE_NOTE

        prompt += (
            f"\n\n**Current Store Information:**\n"
            f"- Store Name: {self.store_info['name']}\n"
            f"- Store URL: {self.store_info['url']}\n"
            f"- Description: {self.store_info['description']}\n"
        )

        products = self.store_info.get('products') or []
        if products:
            catalog = [
                {
                    "name": p.get('name'),
                    "image": p.get('image'),
                    "description": DataHelpers.truncate_text(p.get('description'), PROMPT_DESCRIPTION_LENGTH)
                    if p.get('description') else '',
                    "url": p.get('url'),
                    "salePrice": DataHelpers.format_price_for_ai(p.get('salePrice')),
                    "actualPrice": DataHelpers.format_price_for_ai(p.get('actualPrice')),
                    "category": p.get('category')
                }
                for p in products[:MAX_PROMPT_PRODUCTS]
            ]
            prompt += f"\nProducts available:\n{json.dumps(catalog)}\n\nOnly recommend from this list."

        return prompt

    def build_messages(self, conversation: List[Dict]) -> List[Dict]:
        turns = [
            {"role": m["role"], "content": ValidationHelpers.sanitize_input(m["content"])}
            for m in conversation[-MAX_HISTORY_MESSAGES:]
        ]
        return [{"role": "system", "content": self.build_system_prompt()}] + turns

    # Chat

    def chat(self, conversation: List[Dict]) -> str:
        """Send the conversation through the model dispatcher and return the reply text"""
        return self.dispatcher.dispatch(self.build_messages(conversation))

    def current_model(self) -> str:
        return self.dispatcher.current_model()

    def usage_status(self) -> str:
        self.dispatcher.reset_if_new_day()
        return self.dispatcher.usage_summary()

    def usage_snapshot(self) -> Dict:
        """Usage figures, with any pending daily rollover persisted first"""
        self.dispatcher.reset_if_new_day()
        return self.dispatcher.usage_snapshot()

    # Token / model access

    def list_models(self) -> List[Dict]:
        return self.client.list_models()

    def verify_model_access(self) -> Dict:
        """Cross-reference configured models with the models the token can see"""
        logger.info("Verifying access to all configured models...")
        listed = self.list_models()
        listed_names = {m.get('id') or m.get('name') for m in listed if isinstance(m, dict)}

        configs: List[ModelDescriptor] = self.dispatcher.configs
        available = [c.name for c in configs if c.name in listed_names]
        unavailable = [c.name for c in configs if c.name not in listed_names]
        daily_quota = sum(c.daily_limit for c in configs if c.name in available)

        lines = [
            "✅ Token Access Verification:",
            f"📊 Total Models Configured: {len(configs)}",
            f"✅ Available with your token: {len(available)}",
            f"❌ Unavailable: {len(unavailable)}",
            "",
            f"🎯 Available Models ({len(available)}):",
        ]
        lines.extend(f"   ✅ {name}" for name in available)
        lines.append("")
        if unavailable:
            lines.append(f"⚠️ Unavailable Models ({len(unavailable)}):")
            lines.extend(f"   ❌ {name}" for name in unavailable)
        else:
            lines.append("🎉 All configured models are available!")
        lines.append("")
        lines.append(f"💡 Your GITHUB_TOKEN can access {len(available)} different AI models!")
        lines.append(f"📈 Total daily quota: {daily_quota} requests/day")

        logger.info(f"Model verification complete: available={available}, unavailable={unavailable}")
        return {
            "available": available,
            "unavailable": unavailable,
            "total_daily_quota": daily_quota,
            "summary": "\n".join(lines)
        }

_chat_service_instance: Optional[ChatService] = None
_chat_service_lock = threading.Lock()

def get_chat_service() -> ChatService:
    """Process-wide ChatService, created on first use"""
    global _chat_service_instance
    if _chat_service_instance is None:
        with _chat_service_lock:
            if _chat_service_instance is None:
                _chat_service_instance = ChatService()
    return _chat_service_instance

def reset_chat_service() -> None:
    global _chat_service_instance
    _chat_service_instance = None
