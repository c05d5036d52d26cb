"""Prompt templates and builders for the virtual closet's Gemini generation modes."""

from __future__ import annotations
from dataclasses import dataclass

# Bumped whenever a template changes so stale cache keys stop matching.
PROMPT_VERSION = "v1"


# --- PAIRED SELECTION PROMPT ---

SELECT_PROMPT_TEMPLATE = """Create a new image by combining the elements from the provided images. Take the top clothing item from image 1 and the bottom clothing item from image 2, and place them naturally onto the body in image 3 so it looks like the person is wearing the selected outfit. {FIT_DESCRIPTION} {BACKGROUND_RULE} {IDENTITY_RULE}"""


# --- NANO (FREE TEXT) PROMPT ---

NANO_PROMPT_TEMPLATE = """Using the provided image of a model, please add an outfit to the model that would work in this occasion: {OCCASION}. Ensure the outfit integrates naturally with the model's body shape, pose, and lighting. Keep the background plain white so the focus stays on the model and the outfit."""


# --- OUTFIT TRANSFER PROMPT ---

TRANSFER_PROMPT_TEMPLATE = """Using the provided images, place the outfit from image 2 onto the person in image 1. Keep the face, body shape, and background of image 1 completely unchanged. Ensure the outfit integrates naturally with the model's body shape, pose, and lighting. {BACKGROUND_RULE} {IDENTITY_RULE}"""


@dataclass(frozen=True)
class PromptDefaults:
    """Shared clauses reused across generation prompts."""

    fit_description: str = (
        "Fit to body shape and pose, preserve garment proportions and textures, "
        "match lighting and shadows, handle occlusion by hair and arms."
    )
    background_rule: str = (
        "CRITICAL: The background must be completely white (#FFFFFF) - do not use "
        "black, transparent, or any other background color. Replace any existing "
        "background with solid white."
    )
    identity_rule: str = "Do not change the person identity or add accessories."


DEFAULTS = PromptDefaults()


def build_select_prompt() -> str:
    """Prompt for combining a top, a bottom and the mannequin reference."""
    return SELECT_PROMPT_TEMPLATE.format(
        FIT_DESCRIPTION=DEFAULTS.fit_description,
        BACKGROUND_RULE=DEFAULTS.background_rule,
        IDENTITY_RULE=DEFAULTS.identity_rule,
    )


def build_nano_prompt(occasion: str) -> str:
    occasion = (occasion or "").strip()
    if not occasion:
        raise ValueError("An occasion description is required for nano styling.")
    return NANO_PROMPT_TEMPLATE.format(OCCASION=occasion)


def build_transfer_prompt() -> str:
    return TRANSFER_PROMPT_TEMPLATE.format(
        BACKGROUND_RULE="CRITICAL: The background must be completely white (#FFFFFF) "
        "- do not use black, transparent, or any other background color.",
        IDENTITY_RULE=DEFAULTS.identity_rule,
    )


__all__ = [
    "PROMPT_VERSION",
    "SELECT_PROMPT_TEMPLATE",
    "NANO_PROMPT_TEMPLATE",
    "TRANSFER_PROMPT_TEMPLATE",
    "DEFAULTS",
    "PromptDefaults",
    "build_select_prompt",
    "build_nano_prompt",
    "build_transfer_prompt",
]
