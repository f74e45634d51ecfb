import asyncio
import logging

import numpy as np
import torch

from .llm import ProviderError
from .model_loader import load_model, ModelNotAvailableError, device

logger = logging.getLogger(__name__)


def normalize_vector(vector: np.ndarray) -> np.ndarray:
    """Normalize a vector to unit length."""
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


class ClapTextEmbedder:
    """Embeds text with the CLAP text tower, matching the audio embeddings stored per track."""

    def _embed_sync(self, text: str) -> np.ndarray:
        current_model, current_processor = load_model()

        inputs = current_processor(text=text, return_tensors="pt", padding=True)
        inputs = {k: v.to(device) for k, v in inputs.items()}

        with torch.no_grad():
            embeddings = current_model.get_text_features(**inputs)

        embedding = embeddings[0].cpu().numpy().astype(np.float32)
        return normalize_vector(embedding)

    async def embed(self, text: str) -> np.ndarray:
        try:
            embedding = await asyncio.to_thread(self._embed_sync, text)
        except ModelNotAvailableError as e:
            logger.error(f"Text model not available: {str(e)}")
            raise ProviderError(f"Embedding model not available: {str(e)}") from e
        except Exception as e:
            logger.error(f"Error embedding text: {str(e)}")
            raise ProviderError(f"Embedding failed: {str(e)}") from e

        logger.info(f"Generated embedding for text: '{text}'")
        return embedding
