class ConstantsClass(type):
    """A metaclass for classes that should only contain string constants."""

    def __setattr__(self, name, value):
        raise TypeError("Constants class cannot be modified")

    def get_values(cls):
        """Get all user-defined string values of the class."""
        return [
            value
            for key, value in cls.__dict__.items()
            if not key.startswith("__") and isinstance(value, str)
        ]


class ConfigKeys(metaclass=ConstantsClass):
    """String constants for accessing the config."""

    GENERAL = "general"
    LOG_LEVEL = "log_level"
    OUTPUT_DIRECTORY = "output_directory"

    SERVER = "server"
    SUBMIT_URL = "submit_url"
    INSTALL_URL = "install_url"
    BOUNDARY = "boundary"
    TIMEOUT = "timeout"

    SEARCH = "search"

    EXPORT = "export"
    TITLE_MARKER = "title_marker"
    TEMP_PREFIX = "temp_prefix"

    CENTROIDING = "centroiding"
    NOISE_LEVEL = "noise_level"


class MgfKeys(metaclass=ConstantsClass):
    """String constants for writing MGF blocks."""

    BEGIN = "BEGIN IONS"
    END = "END IONS"
    TITLE = "TITLE"
    PEPMASS = "PEPMASS"
    RTINSECONDS = "RTINSECONDS"
    CHARGE = "CHARGE"


class ResultSections(metaclass=ConstantsClass):
    """Section names of a Mascot result (.dat) file."""

    HEADER = "header"
    PEPTIDES = "peptides"
    QUERY_PREFIX = "query"


class IdentificationCols(metaclass=ConstantsClass):
    """String constants for the columns of the identification table."""

    ROW_IDX = "row_idx"
    QUERY = "query"
    SEQUENCE = "sequence"
    SCORE = "score"
    PEPTIDE_MR = "peptide_mr"
    DELTA = "delta"
    MODIFICATIONS = "modifications"
    PROTEINS = "proteins"


class EventNames(metaclass=ConstantsClass):
    """String constants for events written to the reporting pipeline."""

    SECTION_START = "section_start"
    SECTION_STOP = "section_stop"
    PROGRESS = "progress"
    STATUS = "status"
