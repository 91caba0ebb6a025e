"""
whop.py

last updated: 2026-10-19

Provides a WhopClient class for Whop company API functionality

Scope
Reading memberships and company info for a Whop company (biz_*).
User-token validation and access checks stay with the Whop SDK on the
frontend.
"""

# external
from typing import Dict, Any, Optional, List, Tuple

# internal
from pulse.errors import WhopAPIError
from pulse.settings import WHOP_API_BASE_URL, WHOP_API_KEY, WHOP_PAGE_SIZE
from pulse.utils import request_with_retries


class WhopClient:
    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        """
        Initialize the Whop client with API key from env or directly provided
        """
        self.api_key = api_key or WHOP_API_KEY
        if not self.api_key:
            raise ValueError("WHOP_API_KEY not found in environment variables")

        self.base_url = (base_url or WHOP_API_BASE_URL).rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @staticmethod
    def _extract_error_message(response) -> str:
        """Pull a readable message out of Whop's error bodies"""
        try:
            data = response.json()
        except ValueError:
            return f"API error: {response.status_code} {response.text[:200]}"
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
            if data.get("message"):
                return str(data["message"])
        return f"API error: {response.status_code}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        response = request_with_retries(
            "get",
            url,
            headers=self.headers,
            params=params,
            timeout=10,
            skip_retry_on_404=True,
            skip_retry_on_401=True,
        )
        if response is None:
            raise WhopAPIError(f"Request to {path} failed after retries")
        if response.status_code >= 400:
            raise WhopAPIError(
                self._extract_error_message(response), status_code=response.status_code
            )
        return response.json()

    def get_company(self, company_id: str) -> Dict[str, Any]:
        """
        Get a company by its ID

        Args:
            company_id: The Whop company ID (biz_*)

        Returns:
            Company data as a dictionary
        """
        data = self._get(f"/companies/{company_id}")
        return data.get("data", data) if isinstance(data, dict) else data

    def list_memberships(
        self, company_id: str, first: int = WHOP_PAGE_SIZE, after: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """
        List one page of memberships for a company.

        Whop uses cursor pagination: `first` is the page size and `after` is
        the `page_info.end_cursor` of the previous page.

        Returns:
            (memberships, page_info)
        """
        params = {"company_id": company_id, "first": first}
        if after:
            params["after"] = after

        data = self._get("/memberships", params=params)
        memberships = data.get("data", []) if isinstance(data, dict) else []
        page_info = data.get("page_info", {}) if isinstance(data, dict) else {}
        if not isinstance(memberships, list):
            memberships = []
        if not isinstance(page_info, dict):
            page_info = {}
        return memberships, page_info

    def get_all_memberships(self, company_id: str, first: int = WHOP_PAGE_SIZE) -> list:
        """
        Fetch all memberships for a company, following cursors until
        has_next_page is false.

        Returns:
            List of all membership objects
        """
        all_memberships = []
        after = None
        page = 1

        while True:
            print(f"[WHOP] Fetching memberships page {page} for {company_id}...")
            memberships, page_info = self.list_memberships(
                company_id, first=first, after=after
            )
            all_memberships.extend(memberships)
            print(f"[WHOP] Page {page}: {len(memberships)} memberships")

            after = page_info.get("end_cursor")
            if not page_info.get("has_next_page") or not after or not memberships:
                break
            page += 1

        print(f"[WHOP] Fetched {len(all_memberships)} memberships in {page} pages")
        return all_memberships


if __name__ == "__main__":
    pass
