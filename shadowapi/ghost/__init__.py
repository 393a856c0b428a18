"""
shadowapi.ghost

Traffic interception adapter. Sits between the browser and the target,
watching every exchange without touching it:

    Browser <-> Shadow proxy <-> Target application

- **proxy.py**: mitmproxy addon + DumpMaster runner
"""

from .proxy import ShadowAddon, ShadowInterceptor, request_record, response_record

__all__ = ["ShadowAddon", "ShadowInterceptor", "request_record", "response_record"]
