"""Generation adapters for assessment features.

Intent:
    Keep runtime adapters discoverable via dotted paths so the use cases can
    load them dynamically (`AI_BACKEND` alias or `AI_GENERATION_ADAPTER`).

Exports:
    The individual modules expose a `build()` function returning an object that
    implements `GenerationAdapterProtocol`.
"""

__all__ = ["stub_generation", "local_generation", "gateway_generation"]
