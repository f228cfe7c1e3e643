from tourbook.models.review import REVIEW
from tourbook.models.tour import TOUR
from tourbook.models.user import USER

__all__ = ["REVIEW", "TOUR", "USER"]
