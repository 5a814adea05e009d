class CWLTrackerError(Exception):
    """Base Class for CWL Tracker Errors."""
    pass

##################################################
##### SOURCE ERRORS
##################################################
class SourceUnavailable(CWLTrackerError):
    """
    Raised when the Clash of Clans API can't be reached, is under maintenance, or returns a malformed body.
    """
    def __init__(self,endpoint:str,reason:str=None):
        self.endpoint = endpoint
        self.message = f"Source unavailable for `{endpoint}`" + (f": {reason}" if reason else ".")
        super().__init__(self.message)
    def __str__(self):
        return f'{self.message}'

class SourceRateLimited(SourceUnavailable):
    """
    Raised when the Clash of Clans API answers with 429.
    """
    def __init__(self,endpoint:str):
        super().__init__(endpoint,"rate limited (429)")

class SourceNotFound(CWLTrackerError):
    """
    Raised when the requested resource doesn't exist. For league groups and wars this is the normal steady state.
    """
    def __init__(self,endpoint:str):
        self.endpoint = endpoint
        self.message = f"`{endpoint}` was not found."
        super().__init__(self.message)
    def __str__(self):
        return f'{self.message}'

##################################################
##### DATABASE ERRORS
##################################################
class DatabaseLogin(CWLTrackerError):
    """
    Raised when the bot is unable to login to the database.
    """

class PersistenceFailure(CWLTrackerError):
    """
    Raised when a write to the database fails.
    """
    def __init__(self,collection:str,error:Exception=None):
        self.collection = collection
        self.error = error
        self.message = f"Failed to write to `{collection}`" + (f": {error}" if error else ".")
        super().__init__(self.message)
    def __str__(self):
        return f'{self.message}'

##################################################
##### DATA ERRORS
##################################################
class LoginNotSet(CWLTrackerError):
    """
    Raised when the Clash API credentials are not configured.
    """

class AmbiguousPerspective(CWLTrackerError):
    """
    Raised when neither side of a war document matches the tracked clan.
    """
    def __init__(self,clan_tag:str,side_a:str,side_b:str):
        self.clan_tag = clan_tag
        self.message = f"War between {side_a} and {side_b} does not include {clan_tag}."
        super().__init__(self.message)
    def __str__(self):
        return f'{self.message}'

class InvalidExportFormat(CWLTrackerError):
    """
    Raised when an export type is requested in a format it doesn't support.
    """
    def __init__(self,export_type:str,fmt:str):
        self.message = f"`{export_type}` can't be exported as `{fmt}`."
        super().__init__(self.message)
    def __str__(self):
        return f'{self.message}'
