"""Enable execution via `python -m sentinel_th`.

Routes to configuration validation as the primary entry point; use
`python -m sentinel_th.main` (or the sentinel-th script) to serve the API.
"""

from sentinel_th.config import validate_and_display

validate_and_display()
