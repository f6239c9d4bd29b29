# app/core/prompts.py
from types import MappingProxyType
from typing import Mapping

# "TOK" is the trigger word the LoRA was trained with.
STYLE_PROMPTS: Mapping[str, str] = MappingProxyType(
    {
        "Corporate": (
            "Professional LinkedIn-style headshot of an attractive TOK {person} with a "
            "professional office background and formal business attire. "
            "Well-groomed appearance and fit."
        ),
        "Casual": (
            "Edgy headshot of an attractive TOK {person} standing in a vibrant urban city "
            "street wearing trendy streetwear clothing and an avant-garde pose."
        ),
        "Artistic": (
            "Create an artistic portrait of a TOK {person} in a dramatic, painterly style. "
            "The subject is looking slightly off-camera, with soft, diffused lighting "
            "emphasizing facial features and emotional depth. Use rich, textured "
            "brushstrokes, a muted color palette with warm undertones, and a softly "
            "blurred background that suggests depth without distraction. The overall "
            "tone should evoke introspection and timelessness, reminiscent of a "
            "classical oil painting."
        ),
        "Outdoor": (
            "Photograph taken of a attractive rugged outdoor survivalist TOK {person} in "
            "awe, embracing natures wonderous vastness and beauty with a scenic background"
        ),
        "Fantasy": (
            "Epic portrait of a TOK {person} in a fantasy setting. The overall atmosphere "
            "is mysterious and dramatic, in the visual style of Dungeons & Dragons, Lord "
            "of the Rings, and Game of Thrones. Ultra-realistic, high detail, dark fantasy "
            "color palette, 4K resolution."
        ),
    }
)

DEFAULT_STYLE = "Corporate"


def build_prompt(
    style: str,
    gender: str,
    additional: str | None = None,
    prompts: Mapping[str, str] = STYLE_PROMPTS,
) -> str:
    """
    Fill the style template for the given gender.

    Unknown styles fall back to Corporate. Free text from the user is
    appended as "Additional details: ...".
    """
    person = "man" if gender == "male" else "woman"
    template = prompts.get(style) or prompts[DEFAULT_STYLE]
    prompt = template.replace("{person}", person)
    if additional:
        prompt = f"{prompt} Additional details: {additional}"
    return prompt
