from .logging_setup import setup_logging, mask_secrets, truncate_query, describe_error

__all__ = ["setup_logging", "mask_secrets", "truncate_query", "describe_error"]
