"""
Preset catalog: prompt text and model routing for every preset/style pair.

Prompts are kept server-side so they can change without a client release.
Everything here is data; adding a preset or a style means adding a table
entry, never a branch.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ModelConfig:
    """How to call one provider model."""
    model_id: str
    # "image_url" for single-reference models, "image_urls" for edit models
    image_param: str
    defaults: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    emoji: str
    description: str
    prompt: str
    requires_refs: bool = False


KLING_MODEL = ModelConfig(
    model_id="fal-ai/kling-image/v3/image-to-image",
    image_param="image_url",
    defaults={"num_images": 1, "output_format": "jpeg", "aspect_ratio": "1:1"},
)

NANO_BANANA_MODEL = ModelConfig(
    model_id="fal-ai/nano-banana-pro/edit",
    image_param="image_urls",
    defaults={"num_images": 1, "output_format": "jpeg", "aspect_ratio": "1:1"},
)

DEFAULT_STYLE = "photorealistic"

_FACE_RULES = (
    "Generate their body, clothing, and pose naturally to fit the scene. "
    "Dress them for the environment and use natural body language. "
    "Do not warp or distort the face, but allow natural lighting and angle adjustments."
)

# Reference-image models and edit models name the source photo differently
FACE_PRESERVATION = {
    "image_url": f"Preserve the exact face from the reference image, same person with recognizable features. {_FACE_RULES}",
    "image_urls": f"Preserve the exact face from the input image, same person with recognizable features. {_FACE_RULES}",
}

_BLEND = "Do not just paste the person's face into the picture; blend the person into the scene with the right proportions."

STYLE_MODIFIERS = {
    "photorealistic": (
        "The person is in an iconic Canadian landscape such as the turquoise lakes of Banff, "
        "Rocky Mountain peaks or the Toronto skyline. Realistic high-resolution photo, even "
        "lighting that keeps every facial feature, happy and relaxed expression. " + _BLEND
    ),
    "cartoon": (
        "The person is in a vibrant Canadian cartoon world with friendly Mounties, cheerful "
        "moose and beavers, maple leaf banners and quirky landmarks. Bold colors, clean lines, "
        "animated character design, cheerful expression. " + _BLEND
    ),
    "vintage50s": (
        "The person is in a 1950s Canadian scene: retro diners with bilingual signs, railway "
        "stations, classic ski lodges. Faded warm color grading, subtle film grain and vignette, "
        "period-appropriate styling. " + _BLEND
    ),
    "cinematic": (
        "The person is in a dramatic Canadian setting: vast mountain ranges, misty rainforests, "
        "stormy coastlines or city streets at night. Moody atmospheric lighting, rich color "
        "grading, shallow depth of field, movie poster composition. " + _BLEND
    ),
    "oilPainting": (
        "The person is in a Canadian wilderness scene inspired by the Group of Seven: fiery "
        "autumn forests, northern lakes, windswept pines. Classical oil painting with visible "
        "brush strokes and a warm palette, likeness preserved. " + _BLEND
    ),
    "watercolor": (
        "The person is in a dreamy Canadian scene: misty lakes at dawn, cherry blossoms, "
        "snow-covered rooftops. Soft watercolor washes, translucent layers, light and airy "
        "atmosphere. " + _BLEND
    ),
}

# Alternate spellings sent by older clients
STYLE_ALIASES = {
    "oil-painting": "oilPainting",
}

STYLE_MODELS = {
    "photorealistic": KLING_MODEL,
    "cinematic": KLING_MODEL,
    "vintage50s": KLING_MODEL,
    "cartoon": NANO_BANANA_MODEL,
    "oilPainting": NANO_BANANA_MODEL,
    "watercolor": NANO_BANANA_MODEL,
}

# One lighting/mood per slot so a batch of identical inputs still differs
VARIATION_MODIFIERS = (
    "morning light, golden hour warmth",
    "soft afternoon glow, natural lighting",
    "sunset glow, warm amber tones",
    "bright midday, clear crisp light",
)

PRESETS = {
    preset.id: preset
    for preset in (
        Preset(
            id="mapleAutumn",
            name="Maple Autumn",
            emoji="🍁",
            description="Golden fall leaves and cozy Canadian atmosphere",
            prompt=(
                "Place the person in a Canadian autumn scene with warm oranges, deep reds and "
                "golden yellows. Feature maple leaves, cozy seasonal clothing and fall light, "
                "varying between forests, lakesides, parks and small towns."
            ),
        ),
        Preset(
            id="winterWonderland",
            name="Winter Wonderland",
            emoji="❄️",
            description="Snowy Canadian winter moments",
            prompt=(
                "Place the person in a Canadian winter wonderland with fresh snow, frosted trees "
                "and crisp winter light. Use soft whites and cool blues with warm accents, and "
                "include snowfall, evergreens, cabins or winter sports."
            ),
        ),
        Preset(
            id="northernLights",
            name="Northern Lights",
            emoji="🌌",
            description="Magical aurora and night sky",
            prompt=(
                "Show the person under the Northern Lights in the Canadian wilderness, with green, "
                "purple and pink aurora across a starry sky, snow and water reflections."
            ),
        ),
        Preset(
            id="cottageLife",
            name="Cottage Life",
            emoji="🏕️",
            description="Peaceful lakefront and cozy cabins",
            prompt=(
                "Place the person in Canadian cottage country with docks, canoes, Muskoka chairs, "
                "cabins and fire pits by a calm lake, in natural greens, blues and wood tones."
            ),
        ),
        Preset(
            id="urbanCanada",
            name="Urban Canada",
            emoji="🏙️",
            description="Modern Canadian city life",
            prompt=(
                "Place the person in a vibrant Canadian city with contemporary architecture, "
                "street art, cafés, markets and waterfronts, day or night."
            ),
        ),
        Preset(
            id="wildernessExplorer",
            name="Wilderness Explorer",
            emoji="🏔️",
            description="Wild landscapes and adventure scenes",
            prompt=(
                "Place the person in epic Canadian wilderness: towering mountains, ancient "
                "forests, waterfalls, pristine lakes and rugged trails in national parks."
            ),
        ),
        Preset(
            id="editorialCanada",
            name="Editorial Canada",
            emoji="📸",
            description="Stylish portraits inspired by Canadian fashion and culture",
            prompt=(
                "Create a magazine-worthy editorial portrait of the person in a stylish Canadian "
                "setting with sophisticated lighting and fashion-forward styling."
            ),
        ),
        Preset(
            id="canadianWildlifeParty",
            name="Canadian Wildlife Party",
            emoji="🦫",
            description="Funny and surreal wildlife interactions",
            prompt=(
                "Create a funny, surreal scene with the person surrounded by a group of three to "
                "five different Canadian animals such as a moose, a beaver, a black bear and a "
                "loon, all interacting with the person."
            ),
        ),
        Preset(
            id="ehEdition",
            name="Eh Edition",
            emoji="🍁",
            description="Lighthearted takes on Canadian stereotypes",
            prompt=(
                "Create a comedic scene celebrating Canadian stereotypes: maple syrup, hockey, "
                "Mounties, poutine and extreme politeness, with the person in the middle of it."
            ),
        ),
        Preset(
            id="withus",
            name="With Us",
            emoji="👥",
            description="The user appears with two hosts in Canadian settings",
            prompt=(
                "Create a natural group photo of three people exploring a Canadian setting, all "
                "three faces clearly visible and naturally integrated."
            ),
            requires_refs=True,
        ),
    )
}


def normalize_style(style_id: str | None) -> str | None:
    """Canonical style id, or None when the style is unknown."""
    if not style_id:
        return DEFAULT_STYLE
    style_id = STYLE_ALIASES.get(style_id, style_id)
    return style_id if style_id in STYLE_MODIFIERS else None


def get_preset(preset_id: str) -> Preset | None:
    return PRESETS.get(preset_id)


def model_for_style(style_id: str) -> ModelConfig:
    return STYLE_MODELS.get(normalize_style(style_id) or DEFAULT_STYLE, KLING_MODEL)


def lookup(preset_id: str, style_id: str | None) -> str | None:
    """Composed base prompt for a preset/style pair, None if either is unknown."""
    preset = PRESETS.get(preset_id)
    style = normalize_style(style_id)
    if preset is None or style is None:
        return None

    face_instruction = FACE_PRESERVATION[STYLE_MODELS[style].image_param]
    return f"{face_instruction} {STYLE_MODIFIERS[style]} {preset.prompt}"


def variation_modifier(index: int) -> str:
    return VARIATION_MODIFIERS[index % len(VARIATION_MODIFIERS)]


def build_variation_prompt(preset_id: str, style_id: str, index: int) -> str | None:
    base_prompt = lookup(preset_id, style_id)
    if base_prompt is None:
        return None
    return f"{base_prompt}, {variation_modifier(index)}"


def build_model_params(config: ModelConfig, image_url: str, prompt: str) -> dict:
    params = {**config.defaults, "prompt": prompt}
    if config.image_param == "image_urls":
        params["image_urls"] = [image_url]
    else:
        params["image_url"] = image_url
    return params


def list_presets() -> list[Preset]:
    return list(PRESETS.values())


def list_styles() -> list[str]:
    return list(STYLE_MODIFIERS)
