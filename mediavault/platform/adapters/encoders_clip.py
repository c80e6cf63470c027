"""
CLIP encoders (open_clip, ViT-B-32/openai by default).

Image and text towers share one embedding space, so a text query can be
compared to a stored image embedding with a plain dot product. One model
bundle backs all three encoder kinds; the bundle loads at most once even if
several kinds are requested at the same time.
"""

import logging
import threading
from PIL import Image
from mediavault.core.config import settings
from mediavault.platform.ports.encoders import EncoderKind

log = logging.getLogger("encoders.clip")

PROMPT_TEMPLATE = "a photo of {}"


class ClipModelBundle:
    def __init__(self, model_name: str = "ViT-B-32", pretrained: str = "openai", device: str | None = None):
        self.model_name = model_name
        self.pretrained = pretrained
        self.device_name = device
        self._lock = threading.Lock()
        self._loaded = None

    def load(self):
        with self._lock:
            if self._loaded is None:
                import open_clip
                import torch

                device = self.device_name
                if device is None:
                    if torch.cuda.is_available():
                        device = "cuda"
                    elif torch.backends.mps.is_available():
                        device = "mps"
                    else:
                        device = "cpu"
                log.info(f"Loading CLIP model {self.model_name} ({self.pretrained}) on {device}")
                model, _, preprocess = open_clip.create_model_and_transforms(
                    self.model_name, pretrained=self.pretrained, device=device
                )
                model.eval()
                tokenizer = open_clip.get_tokenizer(self.model_name)
                self._loaded = (model, preprocess, tokenizer, torch.device(device))
            return self._loaded


class ClipImageEncoder:
    def __init__(self, bundle: ClipModelBundle):
        self.model, self.preprocess, _, self.device = bundle.load()

    def encode(self, image: Image.Image) -> list[float]:
        import torch

        tensor = self.preprocess(image.convert("RGB")).unsqueeze(0).to(self.device)
        with torch.no_grad():
            feat = self.model.encode_image(tensor)
            feat = feat / feat.norm(dim=-1, keepdim=True)
        return feat[0].cpu().tolist()


class ClipTextEncoder:
    def __init__(self, bundle: ClipModelBundle):
        self.model, _, self.tokenizer, self.device = bundle.load()

    def encode(self, text: str) -> list[float]:
        return self.encode_many([text])[0]

    def encode_many(self, texts: list[str]) -> list[list[float]]:
        import torch

        tokens = self.tokenizer(texts).to(self.device)
        with torch.no_grad():
            feat = self.model.encode_text(tokens)
            feat = feat / feat.norm(dim=-1, keepdim=True)
        return feat.cpu().tolist()


class ClipZeroShotClassifier:
    """Zero-shot labelling: softmax over image/prompt similarities."""
    def __init__(self, bundle: ClipModelBundle):
        self.model, self.preprocess, self.tokenizer, self.device = bundle.load()

    def rank(self, image: Image.Image, labels: list[str]) -> list[tuple[str, float]]:
        import torch

        if not labels:
            return []
        tensor = self.preprocess(image.convert("RGB")).unsqueeze(0).to(self.device)
        tokens = self.tokenizer([PROMPT_TEMPLATE.format(label.lower()) for label in labels]).to(self.device)
        with torch.no_grad():
            img = self.model.encode_image(tensor)
            txt = self.model.encode_text(tokens)
            img = img / img.norm(dim=-1, keepdim=True)
            txt = txt / txt.norm(dim=-1, keepdim=True)
            probs = (100.0 * img @ txt.T).softmax(dim=-1)[0].cpu().tolist()
        return sorted(zip(labels, probs), key=lambda p: p[1], reverse=True)


def clip_loaders(bundle: ClipModelBundle | None = None) -> dict:
    bundle = bundle or ClipModelBundle(settings.CLIP_MODEL, settings.CLIP_PRETRAINED, settings.CLIP_DEVICE)
    return {
        EncoderKind.IMAGE: lambda: ClipImageEncoder(bundle),
        EncoderKind.TEXT: lambda: ClipTextEncoder(bundle),
        EncoderKind.CLASSIFIER: lambda: ClipZeroShotClassifier(bundle),
    }
