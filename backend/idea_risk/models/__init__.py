from .idea import Idea
from .competitor import Competitor

__all__ = ["Idea", "Competitor"]
