# voicenorm/models/__init__.py
# =============================
# Voice Model Assets — VoiceNorm
#
#   cache      at-most-once download of a model + config pair
#   resources  temporary extraction of models packaged as resources

from voicenorm.models.cache import (  # noqa: F401
    ModelAsset,
    ModelState,
    ensure_model,
    fetch_url,
    model_state,
)

__all__ = [
    "ModelAsset",
    "ModelState",
    "ensure_model",
    "fetch_url",
    "model_state",
]
