from enum import Enum
from typing import Protocol, Sequence, runtime_checkable
from PIL import Image

class EncoderKind(str, Enum):
    IMAGE = "image"
    TEXT = "text"
    CLASSIFIER = "classifier"

@runtime_checkable
class ImageEncoder(Protocol):
    def encode(self, image: Image.Image) -> Sequence[float]: ...

@runtime_checkable
class TextEncoder(Protocol):
    def encode(self, text: str) -> Sequence[float]: ...

@runtime_checkable
class ZeroShotClassifier(Protocol):
    def rank(self, image: Image.Image, labels: list[str]) -> list[tuple[str, float]]:
        """Return (label, probability) pairs, best first."""
        ...
