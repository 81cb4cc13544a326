import logging
from typing import Callable, Dict, List, Optional

from models.model_config import MODEL_CONFIGS, ModelDescriptor, get_model_config, validate_model_configs
from models.usage import MemoryUsageStore, UsageRecord, UsageStore, UsageTable
from services.failure_classifier import RATE_LIMITED, classify_failure
from utils.errors import AllModelsExhausted, UpstreamRequestFailed
from utils.helpers import DateTimeHelpers, LoggingHelpers

logger = logging.getLogger(__name__)

NO_MODEL_AVAILABLE = "No models available"
RATE_LIMIT_REASON = "Rate limit exceeded"

class ModelDispatcher:
    """
    Quota-aware rotation over the configured inference models.

    Every read and write of the usage table goes through store.update(), so
    selection, increments and blocks are each one atomic read-modify-write of
    the persisted blob. The rotation pointer is process memory and starts at
    the first configured model after a restart.
    """

    def __init__(self, client=None, configs: Optional[List[ModelDescriptor]] = None,
                 store: Optional[UsageStore] = None,
                 classifier: Callable = classify_failure,
                 today: Callable[[], str] = DateTimeHelpers.get_today,
                 max_attempts: Optional[int] = None):
        self.configs = list(configs if configs is not None else MODEL_CONFIGS)
        validate_model_configs(self.configs)

        self.client = client
        self.store = store or MemoryUsageStore()
        self.classifier = classifier
        self.today = today
        self.max_attempts = max_attempts or len(self.configs)
        self.current_model_index = 0
        self._usage: Dict[str, UsageRecord] = {}

        self._refresh(self.store.update(self._reconcile))
        logger.info(f"Model dispatcher ready with {len(self.configs)} models")

    def _records(self, table: UsageTable) -> Dict[str, UsageRecord]:
        return {name: UsageRecord.from_dict(name, data) for name, data in table.items()}

    def _reconcile(self, table: UsageTable) -> UsageTable:
        """Create missing records and roll every stale one over to today"""
        today = self.today()
        records = self._records(table)
        for config in self.configs:
            record = records.get(config.name)
            if record is None:
                records[config.name] = UsageRecord.fresh(config.name, today)
            else:
                record.roll_over(today)

        # Orphaned records (no longer configured) are written back untouched
        result = dict(table)
        for config in self.configs:
            result[config.name] = records[config.name].to_dict()
        return result

    def _refresh(self, table: UsageTable) -> None:
        self._usage = {
            config.name: UsageRecord.from_dict(config.name, table[config.name])
            for config in self.configs
        }

    def _scan(self, records: Dict[str, UsageRecord]) -> Optional[int]:
        """Index of the first usable model from the rotation pointer, wrapping once"""
        count = len(self.configs)
        for i in range(count):
            index = (self.current_model_index + i) % count
            config = self.configs[index]
            usage = records.get(config.name)
            if usage and not usage.is_blocked and usage.request_count < config.daily_limit:
                return index
        return None

    def select_model(self) -> Optional[ModelDescriptor]:
        """
        Pick the next usable model

        Returns:
            The selected descriptor, or None when every model is blocked or at its limit
        """
        table = self.store.update(self._reconcile)
        self._refresh(table)

        index = self._scan(self._usage)
        if index is None:
            return None

        self.current_model_index = index
        return self.configs[index]

    def current_model(self) -> str:
        """Name of the model the next selection would use, without moving the pointer"""
        self._refresh(self.store.update(self._reconcile))
        index = self._scan(self._usage)
        return self.configs[index].name if index is not None else NO_MODEL_AVAILABLE

    def record_success(self, model_name: str) -> None:
        """Count one successful request against model_name"""
        config = get_model_config(model_name, self.configs)
        if config is None:
            return

        def _increment(table: UsageTable) -> UsageTable:
            table = self._reconcile(table)
            record = UsageRecord.from_dict(model_name, table[model_name])
            record.request_count += 1
            table[model_name] = record.to_dict()
            return table

        self._refresh(self.store.update(_increment))
        logger.info(f"{model_name} usage: {self._usage[model_name].request_count}/{config.daily_limit}")

    def record_failure(self, model_name: str, reason: str) -> bool:
        """
        Block model_name for the rest of the day if reason is a quota failure

        Args:
            model_name: Model that failed
            reason: Human-readable failure text

        Returns:
            True if the model was blocked
        """
        config = get_model_config(model_name, self.configs)
        if config is None:
            return False

        if self.classifier(reason) != RATE_LIMITED:
            return False

        self._mark_blocked(config, reason)
        return True

    def _mark_blocked(self, config: ModelDescriptor, reason: str) -> None:
        model_name = config.name

        def _block(table: UsageTable) -> UsageTable:
            table = self._reconcile(table)
            record = UsageRecord.from_dict(model_name, table[model_name])
            record.is_blocked = True
            record.last_error = reason
            table[model_name] = record.to_dict()
            return table

        self._refresh(self.store.update(_block))
        LoggingHelpers.log_model_blocked(
            model_name, reason, self._usage[model_name].request_count, config.daily_limit
        )

    def reset_if_new_day(self) -> None:
        """Apply the daily rollover to every record"""
        self._refresh(self.store.update(self._reconcile))

    def dispatch(self, messages: List[Dict]) -> str:
        """
        Send one chat completion, moving to the next model on quota failures

        Args:
            messages: Full message list (system prompt included) sent unchanged on every attempt

        Returns:
            Reply text

        Raises:
            AllModelsExhausted: No model is usable, or every attempt hit a quota failure
            UpstreamRequestFailed: Any non-quota failure; not retried
        """
        for attempt in range(self.max_attempts):
            config = self.select_model()
            if config is None:
                raise AllModelsExhausted(self.usage_summary())

            usage = self._usage[config.name]
            logger.info(
                f"Using model: {config.name} ({usage.request_count}/{config.daily_limit} requests used)"
            )

            try:
                reply = self.client.complete(config.name, messages)
            except Exception as e:
                logger.error(f"Error with model {config.name}: {str(e)}")

                if self.classifier(e) == RATE_LIMITED:
                    self._mark_blocked(config, RATE_LIMIT_REASON)
                    logger.info(
                        f"Rate limit hit for {config.name}, trying next model "
                        f"(attempt {attempt + 1}/{self.max_attempts})"
                    )
                    continue

                raise UpstreamRequestFailed(
                    f"Model {config.name} request failed: {str(e)}", model_name=config.name
                ) from e

            self.record_success(config.name)
            logger.info(f"Successfully got response from {config.name}")
            return reply

        raise AllModelsExhausted(self.usage_summary())

    def usage_snapshot(self) -> Dict:
        """Structured per-model usage plus totals"""
        self._refresh(self._reconcile(self.store.load() or {}))

        models = []
        for config in self.configs:
            usage = self._usage[config.name]
            models.append({
                "model": config.name,
                "tier": config.tier,
                "description": config.description,
                "current": usage.request_count,
                "limit": config.daily_limit,
                "remaining": max(0, config.daily_limit - usage.request_count),
                "percentage": round(usage.request_count / config.daily_limit * 100),
                "blocked": usage.is_blocked,
                "last_error": usage.last_error,
                "last_reset_date": usage.last_reset_date,
            })

        return {
            "models": models,
            "total_used": sum(m["current"] for m in models),
            "total_available": sum(c.daily_limit for c in self.configs),
        }

    def usage_summary(self) -> str:
        """Human-readable usage report"""
        snapshot = self.usage_snapshot()
        lines = ["📊 **Model Usage Status:**", ""]

        for model in snapshot["models"]:
            percentage = model["percentage"]
            if model["blocked"]:
                emoji = "🚫"
            elif percentage >= 90:
                emoji = "⚠️"
            elif percentage >= 50:
                emoji = "🟡"
            else:
                emoji = "✅"

            lines.append(f"{emoji} **{model['model']}**")
            lines.append(f"   {model['current']}/{model['limit']} requests ({percentage}%)")
            lines.append(f"   Tier: {model['tier']} | {model['description']}")
            if model["blocked"] and model["last_error"]:
                lines.append(f"   🚫 Blocked: {model['last_error']}")
            lines.append("")

        lines.append(f"**Total Daily Usage:** {snapshot['total_used']}/{snapshot['total_available']} requests")
        lines.append("**Resets:** Daily at local midnight")
        return "\n".join(lines)
