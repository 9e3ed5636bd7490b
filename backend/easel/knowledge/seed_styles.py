"""Built-in style records and the native-label translation table"""

from typing import Dict, List, Optional

from .schema import StyleCreate

SYSTEM_STYLE_CREATED_AT = "2024-01-01T00:00:00+00:00"

INITIAL_STYLES: List[StyleCreate] = [
    StyleCreate(
        id="style_001",
        label="Cyberpunk",
        prompt_fragment=(
            "neon lights, high tech, low life, dark city background, futuristic, "
            "cyberpunk aesthetic, vibrant colors, urban decay"
        ),
        description="赛博朋克风格：霓虹灯、高科技与低生活的对比、暗色城市背景",
        tags=["cyberpunk", "futuristic", "neon", "urban", "sci-fi"],
        metadata={"category": "digital", "popularity": 85},
        is_system_protected=True,
    ),
    StyleCreate(
        id="style_002",
        label="Watercolor",
        prompt_fragment=(
            "soft pastel colors, artistic fluidity, paper texture, watercolor painting, "
            "gentle brushstrokes, translucent layers, artistic expression"
        ),
        description="水彩画风格：柔和的色彩、流动的笔触、纸张质感",
        tags=["watercolor", "soft", "artistic", "traditional", "pastel"],
        metadata={"category": "traditional", "popularity": 75},
        is_system_protected=True,
    ),
    StyleCreate(
        id="style_003",
        label="Minimalist",
        prompt_fragment=(
            "minimalist design, clean lines, simple composition, negative space, "
            "monochromatic, geometric shapes, modern aesthetic"
        ),
        description="极简主义风格：简洁的线条、留白、几何形状",
        tags=["minimalist", "simple", "clean", "modern", "geometric"],
        metadata={"category": "digital", "popularity": 70},
        is_system_protected=True,
    ),
    StyleCreate(
        id="style_004",
        label="Oil Painting",
        prompt_fragment=(
            "oil painting, rich textures, bold brushstrokes, classical art, "
            "vibrant colors, canvas texture, artistic masterpiece"
        ),
        description="油画风格：丰富的纹理、大胆的笔触、古典艺术",
        tags=["oil", "painting", "classical", "textured", "traditional"],
        metadata={"category": "traditional", "popularity": 80},
        is_system_protected=True,
    ),
    StyleCreate(
        id="style_005",
        label="Anime",
        prompt_fragment=(
            "anime style, manga art, vibrant colors, expressive characters, "
            "detailed backgrounds, Japanese animation, cel-shading"
        ),
        description="动漫风格：日式动画、鲜艳色彩、富有表现力的角色",
        tags=["anime", "manga", "japanese", "colorful", "character"],
        metadata={"category": "digital", "popularity": 90},
        is_system_protected=True,
    ),
]

# Native style names users type, mapped to canonical index labels
STYLE_TRANSLATIONS: Dict[str, str] = {
    "赛博朋克": "Cyberpunk",
    "赛博": "Cyberpunk",
    "水彩": "Watercolor",
    "水彩画": "Watercolor",
    "极简": "Minimalist",
    "极简主义": "Minimalist",
    "简约": "Minimalist",
    "油画": "Oil Painting",
    "动漫": "Anime",
    "动画": "Anime",
    "二次元": "Anime",
}


def translate_style(style: Optional[str]) -> Optional[str]:
    """Canonical label for a native style name, or None if unknown"""
    if not style:
        return None
    return STYLE_TRANSLATIONS.get(style.strip())
