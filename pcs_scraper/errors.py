"""Exception types raised while driving the search UI and detail pages."""


class ScrapeError(Exception):
    """Base class for every failure the scraper knows how to classify."""


class NavigationTimeout(ScrapeError):
    """A page failed to reach its ready state within the navigation budget."""


class ElementNotFound(ScrapeError):
    """An expected control or element was absent or never became usable."""


class WaitTimeout(ScrapeError):
    """A polled predicate did not become true before its timeout."""


class PaginationStuck(ScrapeError):
    """The page index did not advance after a pagination action."""


class ParseFailure(ScrapeError):
    """Free-text extraction found no recognisable structure."""


class CalendarNavigationError(ScrapeError):
    """The date picker could not be moved to the requested month."""


class AbortedByPolicy(ScrapeError):
    """A row-level failure was escalated because abort_on_failure is set."""


class ScriptEvaluationError(ScrapeError):
    """In-page JavaScript failed, typically because a postback replaced the document."""
