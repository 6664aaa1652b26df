import os
from dataclasses import dataclass, field
from typing import Dict, Any


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_seconds: int

    def to_dict(self) -> Dict[str, int]:
        return {'max_requests': self.max_requests, 'window_seconds': self.window_seconds}


def _policy_from_env(prefix: str, max_requests: int, window_seconds: int) -> RateLimitPolicy:
    return RateLimitPolicy(
        max_requests=int(os.getenv(f'{prefix}_MAX_REQUESTS', str(max_requests))),
        window_seconds=int(os.getenv(f'{prefix}_WINDOW_SECONDS', str(window_seconds))),
    )


@dataclass
class WarehouseSecurityConfig:
    api_read_limit: RateLimitPolicy = field(default_factory=lambda: RateLimitPolicy(60, 300))
    bulk_delete_limit: RateLimitPolicy = field(default_factory=lambda: RateLimitPolicy(3, 3600))
    sku_update_limit: RateLimitPolicy = field(default_factory=lambda: RateLimitPolicy(30, 300))

    # Batches larger than this are rate limited as bulk destructive operations.
    bulk_threshold: int = 10
    max_batch_size: int = 500

    identifier_max_length: int = 50
    text_max_length: int = 255
    reason_max_length: int = 500

    api_version: str = '1.0'

    @classmethod
    def from_environment(cls) -> 'WarehouseSecurityConfig':
        return cls(
            api_read_limit=_policy_from_env('WMS_API_READ', 60, 300),
            bulk_delete_limit=_policy_from_env('WMS_BULK_DELETE', 3, 3600),
            sku_update_limit=_policy_from_env('WMS_SKU_UPDATE', 30, 300),
            bulk_threshold=int(os.getenv('WMS_BULK_THRESHOLD', '10')),
            max_batch_size=int(os.getenv('WMS_MAX_BATCH_SIZE', '500')),
            identifier_max_length=int(os.getenv('WMS_IDENTIFIER_MAX_LENGTH', '50')),
            text_max_length=int(os.getenv('WMS_TEXT_MAX_LENGTH', '255')),
            reason_max_length=int(os.getenv('WMS_REASON_MAX_LENGTH', '500')),
            api_version=os.getenv('WMS_API_VERSION', '1.0'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'api_read_limit': self.api_read_limit.to_dict(),
            'bulk_delete_limit': self.bulk_delete_limit.to_dict(),
            'sku_update_limit': self.sku_update_limit.to_dict(),
            'bulk_threshold': self.bulk_threshold,
            'max_batch_size': self.max_batch_size,
            'identifier_max_length': self.identifier_max_length,
            'text_max_length': self.text_max_length,
            'reason_max_length': self.reason_max_length,
            'api_version': self.api_version,
        }


config = WarehouseSecurityConfig.from_environment()
