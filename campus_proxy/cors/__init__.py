from .policy import OriginPolicy, get_origin_policy

__all__ = ["OriginPolicy", "get_origin_policy"]
