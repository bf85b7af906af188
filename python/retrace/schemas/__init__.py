from retrace.schemas.basic import schema

__all__ = ["schema"]
