# civicwatch/models/__init__.py
from civicwatch.db.base import Base  # noqa: F401

from . import user  # noqa: F401
from . import area_code  # noqa: F401
from . import incident  # noqa: F401
from . import message  # noqa: F401
from . import report  # noqa: F401
from . import audit_log  # noqa: F401
from . import notification  # noqa: F401
