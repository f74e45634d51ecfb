import os
import logging
import torch
from transformers import ClapModel, ClapProcessor

from . import config

logger = logging.getLogger(__name__)

# Initialize variables for lazy loading
model = None
processor = None
device = torch.device("cuda" if torch.cuda.is_available() else "cpu")


class ModelNotAvailableError(Exception):
    """Raised when the required model is not available."""
    pass


def _has_local_copy(path: str) -> bool:
    return os.path.isfile(os.path.join(path, "config.json"))


def load_model():
    """
    Load the CLAP model and processor used for text embeddings.
    Uses the cached pair if already loaded, then the local cache directory,
    and finally downloads from Hugging Face (saving into the cache).

    Returns:
        tuple: (model, processor) - The loaded CLAP model and processor

    Raises:
        ModelNotAvailableError: If the model could not be loaded
    """
    global model, processor

    if model is not None and processor is not None:
        return model, processor

    cache_dir = config.MODEL_CACHE_DIR

    if _has_local_copy(cache_dir):
        try:
            logger.info(f"Loading CLAP model from cache: {cache_dir}")
            model = ClapModel.from_pretrained(cache_dir, local_files_only=True).to(device)
            processor = ClapProcessor.from_pretrained(cache_dir, local_files_only=True)
            model.eval()
            return model, processor
        except Exception as local_e:
            logger.warning(f"Failed to load from cache: {local_e}, falling back to HF download")

    try:
        logger.info(f"Downloading CLAP model '{config.EMBEDDING_MODEL}'")
        model = ClapModel.from_pretrained(config.EMBEDDING_MODEL).to(device)
        processor = ClapProcessor.from_pretrained(config.EMBEDDING_MODEL)
        model.eval()
    except Exception as e:
        model, processor = None, None
        logger.error(f"Failed to initialize CLAP model: {e}")
        raise ModelNotAvailableError(f"CLAP model could not be loaded: {e}") from e

    try:
        os.makedirs(cache_dir, exist_ok=True)
        logger.info(f"Saving model to {cache_dir} for future use")
        model.save_pretrained(cache_dir)
        processor.save_pretrained(cache_dir)
    except OSError as e:
        logger.warning(f"Could not cache model in {cache_dir}: {e}")

    return model, processor
