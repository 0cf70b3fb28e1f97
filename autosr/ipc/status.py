"""
Status exchange with a connected dashboard.
"""

from pydantic import BaseModel, Field

from autosr.core.tracker import Tracker
from autosr.models.target import TargetInfo

QUERY = "?"


class Dashboard(BaseModel):
    """What a dashboard sends and receives."""

    select_url: str = QUERY
    tracking: list[TargetInfo] = Field(default_factory=list)


class StatusService:
    """
    Replicates dashboard state.

    A request whose `select_url` is `"?"` asks for the current selection; any
    other value replaces it. Every response carries a fresh copy of the
    tracking list.
    """

    def __init__(self, tracker: Tracker):
        self.tracker = tracker
        self._select_url = ""

    @property
    def select_url(self) -> str:
        return self._select_url

    def replicate(self, request: Dashboard) -> Dashboard:
        response = Dashboard(select_url=request.select_url)
        if request.select_url == QUERY:
            response.select_url = self._select_url
        else:
            self._select_url = request.select_url
        response.tracking = self.tracker.list_tracking()
        return response
