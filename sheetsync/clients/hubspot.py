"""
sheetsync.clients.hubspot
~~~~~~~~~~~~~~~~~~~~~~~~~

This module contains a high-level HubSpot CRM API client class.
"""

from logging import error, info, warning
from typing import Optional

from sheetsync.models import Outcome
from sheetsync.ratelimit import RateLimiter

import requests as rq

ASSOCIATION_TYPE = "contact_to_company"


class HubSpotClient:
    """ Implement the `HubSpotClient` class.

    This class contains a high-level controlled interface for creating
    contacts in HubSpot without duplicating existing ones, and for linking
    them to their company.

    No exception escapes the public methods. Every remote failure is logged
    and turned into a `None`/`False` sentinel, so a bad row never aborts a run.

    :param base: Base URL of the HubSpot API.
    :param session: Optional `requests.Session`-like object.
    :param limiter: Optional `RateLimiter` consulted before each contact
                    create. `None` disables rate limiting.
    :param dedupe: Skip contacts whose email already exists remotely.
    :param link_companies: Resolve, create and associate the row's company.
    :param fail_open: Treat a failed existence search as "not found". When
                      `False`, a failed contact search blocks the create.
    :param timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base: str = "https://api.hubapi.com",
        session: rq.Session = None,
        limiter: Optional[RateLimiter] = None,
        dedupe: bool = True,
        link_companies: bool = True,
        fail_open: bool = True,
        timeout: float = 30.0,
    ):
        self.base: str = base.rstrip("/")
        self.session: rq.Session = session or rq.Session()
        self.limiter: Optional[RateLimiter] = limiter
        self.dedupe: bool = dedupe
        self.link_companies: bool = link_companies
        self.fail_open: bool = fail_open
        self.timeout: float = timeout

        self.last_outcome: Optional[Outcome] = None

    def _headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, token: str, body: dict = None) -> dict:
        """ Send a request and return the decoded JSON body.

        :raises requests.RequestException: On transport failure or a non-2xx
                                           status.
        :raises ValueError: If the body is not a JSON object.
        """
        url: str = "".join([self.base, path])
        response: rq.Response = self.session.request(
            method, url, headers=self._headers(token), json=body, timeout=self.timeout
        )
        response.raise_for_status()

        if not response.content:
            return {}

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {path}, got {type(data).__name__}.")
        return data

    def _search(self, objects: str, prop: str, value: str, token: str) -> dict:
        body: dict = {
            "filterGroups": [
                {"filters": [{"propertyName": prop, "operator": "EQ", "value": value}]}
            ]
        }
        return self._request("POST", f"/crm/v3/objects/{objects}/search", token, body)

    def contact_exists(self, email: str, token: str) -> bool:
        """ Check whether a contact with this exact email already exists.

        On failure the result follows the `fail_open` policy: "not found" when
        failing open, "exists" otherwise.

        :param email: A `str` email address.
        :param token: A valid access token.
        """
        found: Optional[bool] = self._find_contact(email, token)
        if found is None:
            return not self.fail_open
        return found

    def _find_contact(self, email: str, token: str) -> Optional[bool]:
        try:
            data: dict = self._search("contacts", "email", email, token)
            return _total(data) > 0
        except (rq.RequestException, ValueError) as e:
            log_error(e)
            return None

    def company_exists(self, name: str, token: str) -> Optional[str]:
        """ Find a company by exact name.

        :param name: A `str` company name.
        :param token: A valid access token.
        :return: The company id, or `None` if not found or the search failed.
        """
        try:
            data: dict = self._search("companies", "name", name, token)
            total: int = _total(data)
        except (rq.RequestException, ValueError) as e:
            log_error(e)
            return None

        results = data.get("results")
        if total > 0 and isinstance(results, list) and results:
            return _id(results[0])
        return None

    def create_company(self, name: str, token: str) -> Optional[str]:
        """ Create a company.

        :return: The new company id, or `None` on failure.
        """
        try:
            data: dict = self._request(
                "POST", "/crm/v3/objects/companies", token, {"properties": {"name": name}}
            )
        except (rq.RequestException, ValueError) as e:
            log_error(e)
            return None

        company_id: Optional[str] = _id(data)
        if company_id is None:
            error(f"Company create for {name} returned no id. data={data}")
            return None

        info(f"Created company: {name}")
        return company_id

    def associate_contact_with_company(
        self, contact_id: str, company_id: str, token: str
    ) -> None:
        """ Link a contact to a company. Failures are logged and ignored. """
        path: str = (
            f"/crm/v3/objects/contacts/{contact_id}"
            f"/associations/companies/{company_id}/{ASSOCIATION_TYPE}"
        )
        try:
            self._request("PUT", path, token)
        except (rq.RequestException, ValueError) as e:
            log_error(e)
            warning(f"Couldn't associate contact {contact_id} with company {company_id}.")

    def resolve_company(self, name: str, token: str) -> Optional[str]:
        """ Return the id of the named company, creating it if absent. """
        company_id: Optional[str] = self.company_exists(name, token)
        if company_id is None:
            company_id = self.create_company(name, token)
        return company_id

    def upload_contact(self, record: dict, token: str) -> Optional[dict]:
        """ Create the contact for one spreadsheet row unless it already exists.

        The reason for a `None` return is available in `last_outcome`.

        :param record: A `dict` mapping sheet headers to cell values.
        :param token: A valid access token.
        :return: The created contact as returned by HubSpot, or `None` if the
                 row was skipped or the create failed.
        """
        self.last_outcome = None

        email: str = (record.get("Email") or "").strip()
        if not email:
            info("No email provided, skipping row.")
            self.last_outcome = Outcome.SKIPPED_NO_EMAIL
            return None

        if self.dedupe:
            found: Optional[bool] = self._find_contact(email, token)
            if found is None and not self.fail_open:
                warning(f"Couldn't check for an existing contact, not creating: {email}")
                self.last_outcome = Outcome.FAILED
                return None
            if found:
                info(f"Contact already exists, skipping: {email}")
                self.last_outcome = Outcome.SKIPPED_DUPLICATE
                return None

        company: str = (record.get("Company") or "").strip()
        company_id: Optional[str] = None
        if self.link_companies and company:
            company_id = self.resolve_company(company, token)
            if company_id is None:
                warning(f"Couldn't resolve company {company}, creating contact without a link.")

        if self.limiter is not None:
            self.limiter.acquire()

        body: dict = {
            "properties": {
                "firstname": record.get("First Name"),
                "lastname": record.get("Last Name"),
                "email": email,
                "company": record.get("Company"),
                "phone": record.get("Phone Number"),
                "lifecyclestage": record.get("Lifecycle Stage"),
            }
        }
        body["properties"] = {k: v for k, v in body["properties"].items() if v is not None}

        try:
            contact: dict = self._request("POST", "/crm/v3/objects/contacts", token, body)
        except (rq.RequestException, ValueError) as e:
            log_error(e)
            self.last_outcome = Outcome.FAILED
            return None

        contact_id: Optional[str] = _id(contact)
        if contact_id is None:
            error(f"Contact create for {email} returned no id. data={contact}")
            self.last_outcome = Outcome.FAILED
            return None

        info(f"Created contact: {record.get('First Name')} {record.get('Last Name')}")

        if company_id is not None:
            self.associate_contact_with_company(contact_id, company_id, token)

        self.last_outcome = Outcome.CREATED
        return contact


def _total(data: dict) -> int:
    """ Read a search response's `total`.

    :raises ValueError: If `total` is not an integer.
    """
    try:
        return int(data.get("total", 0))
    except (TypeError, ValueError):
        raise ValueError(f"Search response has a malformed total: {data.get('total')!r}")


def _id(data) -> Optional[str]:
    if not isinstance(data, dict) or data.get("id") in (None, ""):
        return None
    return str(data["id"])


def log_error(e: Exception) -> None:
    """ Log a HubSpot failure with the status code and body when available. """
    response: Optional[rq.Response] = getattr(e, "response", None)
    if response is not None:
        try:
            data = response.json()
        except ValueError:
            data = response.text
        error(f"HubSpot API error. status={response.status_code} data={data}")
    else:
        error(f"General error. {e}")
