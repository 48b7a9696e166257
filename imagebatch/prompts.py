"""
Default prompts and the prompt derived from an image's file name.
"""

import os
import re


DEFAULT_BATCH_PROMPT = "Convert these textures to seamless PBR materials, high quality, 8k resolution"

DEFAULT_REDO_PROMPT = "Improve details, clean edges, and keep the same composition"

FILE_NAME_PROMPT = "Creatively reimagine / upscale this {name} texture in great detail to high definition"


def format_name(file_name: str) -> str:
    """'rusty_metal-plate.png' -> 'Rusty Metal Plate' ('Texture' if empty)."""
    stem = os.path.splitext(os.path.basename(file_name))[0]
    words = [w for w in re.split(r'[\s_\-]+', stem) if w]
    formatted = ' '.join(w[0].upper() + w[1:] for w in words)
    return formatted or 'Texture'


def build_prompt_from_filename(file_name: str) -> str:
    return FILE_NAME_PROMPT.format(name=format_name(file_name))
