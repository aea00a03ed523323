from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple


@dataclass(frozen=True)
class NormalizationProfile:
    """Per-channel (mean, scale) pairs used when the encoder was trained."""

    name: str
    mean: Tuple[float, float, float]
    std: Tuple[float, float, float]


# Constants from the CLIP repository (openai/CLIP, clip.py _transform)
OPENAI_CLIP = NormalizationProfile(
    name="openai-clip",
    mean=(0.48145466, 0.4578275, 0.40821073),
    std=(0.26862954, 0.26130258, 0.27577711),
)

# Same normalization used for ResNet/VGG
IMAGENET = NormalizationProfile(
    name="imagenet",
    mean=(0.485, 0.456, 0.406),
    std=(0.229, 0.224, 0.225),
)

PROFILES: Dict[str, NormalizationProfile] = {p.name: p for p in (OPENAI_CLIP, IMAGENET)}


def get_profile(name: str) -> NormalizationProfile:
    key = (name or OPENAI_CLIP.name).strip().lower()
    if key not in PROFILES:
        raise ValueError(f"Unknown normalization profile '{name}'. Known: {sorted(PROFILES)}")
    return PROFILES[key]


@dataclass(frozen=True)
class InputBinding:
    """Name and geometry of the image input of an exported graph."""

    name: str = "input"
    image_size: int = 224

    def __post_init__(self):
        if not self.name:
            raise ValueError("Input name must not be empty")
        if self.image_size < 1:
            raise ValueError(f"Image size must be positive, got {self.image_size}")

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        return (1, 3, self.image_size, self.image_size)


DEFAULT_BINDING = InputBinding()


@dataclass(frozen=True)
class OutputSelector:
    """
    Picks the embedding out of the outputs a model returns.

    - by position: index into the outputs in declared order (-1 = last)
    - by name: match against the handle's output_names
    """

    position: Optional[int] = -1
    name: Optional[str] = None

    @classmethod
    def by_position(cls, index: int) -> "OutputSelector":
        return cls(position=index, name=None)

    @classmethod
    def by_name(cls, name: str) -> "OutputSelector":
        return cls(position=None, name=name)

    @classmethod
    def parse(cls, spec: str) -> "OutputSelector":
        """Accepts "position:-1", "name:image_embeds", "-1" or "image_embeds"."""
        s = (spec or "").strip()
        if not s:
            raise ValueError("Empty output selector")
        kind, sep, value = s.partition(":")
        if sep:
            kind = kind.strip().lower()
            value = value.strip()
            if kind == "position":
                try:
                    return cls.by_position(int(value))
                except ValueError:
                    raise ValueError(f"Invalid output position '{value}'") from None
            if kind == "name":
                if not value:
                    raise ValueError("Output selector 'name:' needs a name")
                return cls.by_name(value)
            raise ValueError(f"Unknown output selector kind '{kind}' (use 'position' or 'name')")
        try:
            return cls.by_position(int(s))
        except ValueError:
            return cls.by_name(s)

    def describe(self) -> str:
        if self.name is not None:
            return f"name:{self.name}"
        return f"position:{self.position}"

    def index_in(self, output_names: Optional[Sequence[str]], n_outputs: int) -> int:
        if self.name is not None:
            if output_names is None:
                raise LookupError(f"Cannot select output '{self.name}': model handle has no output names")
            names = list(output_names)
            if self.name not in names:
                raise LookupError(f"Output '{self.name}' not in model outputs {names}")
            return names.index(self.name)
        if not -n_outputs <= self.position < n_outputs:
            raise LookupError(f"Output position {self.position} out of range for {n_outputs} output(s)")
        return self.position % n_outputs


LAST_OUTPUT = OutputSelector.by_position(-1)
