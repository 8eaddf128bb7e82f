"""Module containing custom exceptions."""


class CustomError(Exception):
    """Custom mascotsearch error class."""

    _error_code = ""
    _msg = ""
    _detail_msg = ""
    _user_msg = ""

    @property
    def error_code(self):
        return self._error_code

    @property
    def msg(self):
        return self._msg

    @property
    def detail_msg(self):
        return self._detail_msg

    def __init__(self, msg: str = "", detail_msg: str = ""):
        self._user_msg = msg
        if detail_msg:
            self._detail_msg = detail_msg

        super().__init__(self._msg)

    def __str__(self):
        text = f"{self._error_code}: {self._msg}"
        if self._user_msg:
            text += f"\n'{self._user_msg}'"
        if self._detail_msg:
            text += f"\n{self._detail_msg}"
        return text


class ConfigurationError(CustomError):
    """Raise when the endpoint URLs, the boundary or the search form fields are malformed."""

    _error_code = "CONFIGURATION_ERROR"

    _msg = "Malformed or invalid configuration."


class KeyAddedConfigError(ConfigurationError):
    """Raise when a key should be added to a config."""

    def __init__(self, key: str, value: str, config_name: str):
        super().__init__(
            detail_msg=(
                f"Defining new keys is not allowed when updating a config: "
                f"key='{key}', value='{value}', config_name='{config_name}'"
            )
        )


class TypeMismatchConfigError(ConfigurationError):
    """Raise when the type of a value does not match the default type."""

    def __init__(self, key: str, value: str, config_name: str, extra_msg: str):
        super().__init__(
            detail_msg=(
                f"Types of values must match default config: "
                f"key='{key}', value='{value}', config_name='{config_name}', types='{extra_msg}'"
            )
        )


class TransportError(CustomError):
    """Raise when the connection to the search server fails while submitting or fetching."""

    _error_code = "TRANSPORT_ERROR"

    _msg = "Communication with the search server failed."


class ProtocolError(CustomError):
    """Raise when the submission response ends without a result location."""

    _error_code = "PROTOCOL_ERROR"

    _msg = "Search server response did not contain a result file location."

    _detail_msg = """The response stream was read to the end but no link to a result file was found.
    This can have the following reasons:
      1. The search was rejected by the server, e.g. because of invalid search parameters.
      2. The submitted file did not contain any MS/MS spectra.
      3. The server returned an unexpected page layout."""


class ResultParseError(CustomError):
    """Raise when the result file can not be parsed."""

    _error_code = "RESULT_PARSE_ERROR"

    _msg = "Malformed search result file."


class CorrelationError(ResultParseError):
    """Raise when a query title can not be mapped back onto a peak list row."""

    _error_code = "CORRELATION_ERROR"

    _msg = "Query title does not encode a valid row index."
