from __future__ import annotations

"""Selectors for the published-FIR search page."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PublishedFirSelectors:
    """Element hints for the ASP.NET published-FIR form.

    The page is a single postback form: the district dropdown repopulates the
    police-station dropdown, the search button reloads the page with a
    results grid, and each grid row carries an indexed download button.
    """

    state_select: str = "#ContentPlaceHolder1_ddlState"
    district_select: str = "#ContentPlaceHolder1_ddlDistrict"
    station_select: str = "#ContentPlaceHolder1_ddlPoliceStation"
    date_from_input: str = "#ContentPlaceHolder1_txtDateOfRegistrationFrom"
    date_to_input: str = "#ContentPlaceHolder1_txtDateOfRegistrationTo"
    search_button: str = "#ContentPlaceHolder1_btnSearch"
    page_size_select: str = "#ContentPlaceHolder1_ucRecordView_ddlPageSize"
    results_table: str = "#ContentPlaceHolder1_gdvDeadBody"
    download_button_prefix: str = "#ContentPlaceHolder1_gdvDeadBody_btnDownload_"
    # Page-size values: an intermediate size first, then "all rows".
    page_size_warmup: str = "50"
    page_size_all: str = "0"

    def download_button(self, row_index: int) -> str:
        return f"{self.download_button_prefix}{row_index}"


PUBLISHED_FIR_SELECTORS = PublishedFirSelectors()

__all__ = ["PublishedFirSelectors", "PUBLISHED_FIR_SELECTORS"]
