from enum import Enum


class SortMode(str, Enum):
    GDP_DESC = "gdp_desc"
    NAME_ASC = "name_asc"


class RefreshState(Enum):
    IDLE = "idle"
    FETCHING_COUNTRIES = "fetching_countries"
    FETCHING_RATES = "fetching_rates"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    FAILED = "failed"
