"""companion - generation-output interpretation and delivery for companion chat."""

__version__ = "0.1.0"
__logo__ = "💌"
