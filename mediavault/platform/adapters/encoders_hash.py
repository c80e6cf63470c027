import hashlib
import math
import re
from PIL import Image
from mediavault.platform.ports.encoders import EncoderKind

class HashingTextEncoder:
    """
    Deterministic, lightweight text vectors via feature hashing.
    Not semantically aligned with HashingImageEncoder; dev/offline use only.
    """
    def __init__(self, d: int = 512):
        self._d = int(d)

    def encode(self, text: str) -> list[float]:
        v = [0.0] * self._d
        for tok in self._tokenize(text):
            h = int(hashlib.md5(tok.encode("utf-8")).hexdigest(), 16)
            v[h % self._d] += 1.0
        _l2_normalize(v)
        return v

    def _tokenize(self, text: str) -> list[str]:
        # simple lowercase + split on non-alnum
        return [x for x in re.split(r"[^a-z0-9]+", (text or "").lower()) if x]

class HashingImageEncoder:
    """Colour-layout fingerprint: a small RGB thumbnail flattened to a vector."""
    def __init__(self, side: int = 16):
        self.side = side

    def encode(self, image: Image.Image) -> list[float]:
        thumb = image.convert("RGB").resize((self.side, self.side))
        v = [c / 255.0 for px in thumb.getdata() for c in px]
        # centre so that unrelated images are not all near-parallel
        mean = sum(v) / len(v)
        v = [x - mean for x in v]
        _l2_normalize(v)
        return v

class HashingClassifier:
    """Has no notion of content; spreads probability evenly so callers fall back to "Other"."""
    def rank(self, image: Image.Image, labels: list[str]) -> list[tuple[str, float]]:
        if not labels:
            return []
        p = 1.0 / len(labels)
        return [(label, p) for label in labels]

def _l2_normalize(v: list[float]) -> None:
    s = math.sqrt(sum(x*x for x in v)) or 1.0
    for i in range(len(v)):
        v[i] /= s

def hashing_loaders(dim: int) -> dict:
    return {
        EncoderKind.IMAGE: HashingImageEncoder,
        EncoderKind.TEXT: lambda: HashingTextEncoder(d=dim),
        EncoderKind.CLASSIFIER: HashingClassifier,
    }
