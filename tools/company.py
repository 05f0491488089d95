import hashlib
import os
import re
from typing import Dict, Any, Optional

import httpx
from loguru import logger

from graph.state import CompanyInfo
from graph.nodes.score import email_domain, is_generic_domain

INDUSTRIES = ["technology", "healthcare", "finance", "retail", "manufacturing", "consulting"]

class CompanyAnalyzer:
    """Company lookup from an email domain (Clearbit when configured, heuristics otherwise)."""

    def __init__(self, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key or os.getenv("CLEARBIT_API_KEY")
        self.base_url = "https://company.clearbit.com/v2"
        self.transport = transport

    async def analyze(self, email: str) -> CompanyInfo:
        """Build a company profile for the domain of an email address."""
        domain = email_domain(email)

        if is_generic_domain(domain):
            logger.info(f"Generic email domain {domain}, using generic profile")
            return generic_profile(domain)

        if not self.api_key:
            logger.warning("No Clearbit API key, using heuristic company profile")
            return self._heuristic_profile(domain)

        try:
            data = await self._fetch_company(domain)
            return self._from_clearbit(domain, data)
        except Exception as e:
            logger.error(f"Clearbit company lookup failed for {domain}: {e}")
            return self._heuristic_profile(domain)

    async def _fetch_company(self, domain: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=20, transport=self.transport) as client:
            response = await client.get(
                f"{self.base_url}/companies/find",
                params={"domain": domain},
                headers={"Authorization": f"Bearer {self.api_key}"}
            )
            response.raise_for_status()
            return response.json()

    def _from_clearbit(self, domain: str, data: Dict[str, Any]) -> CompanyInfo:
        name = data.get("name") or company_name_from_domain(domain)
        category = data.get("category") or {}
        industry = (category.get("industry") or category.get("sector") or pick_industry(domain)).lower()
        insights = [f"{name} operates in the {industry} sector"]
        if data.get("description"):
            insights.append(data["description"])
        employees = (data.get("metrics") or {}).get("employees")
        if employees:
            insights.append(f"{name} has around {employees} employees")
        return {
            "name": name,
            "domain": domain,
            "industry": industry,
            "insights": insights,
            "challenges": [f"workflow automation in {industry}", "data-driven decision making", "competitive advantage through AI"],
            "source": "clearbit",
        }

    def _heuristic_profile(self, domain: str) -> CompanyInfo:
        name = company_name_from_domain(domain)
        industry = pick_industry(domain)
        return {
            "name": name,
            "domain": domain,
            "industry": industry,
            "insights": [
                f"{name} appears to be in the {industry} sector",
                f"Companies in {industry} are increasingly adopting AI solutions",
                "Industry trend shows 40% growth in AI adoption this year",
            ],
            "challenges": [f"workflow automation in {industry}", "data-driven decision making", "competitive advantage through AI"],
            "source": "heuristic",
        }

def generic_profile(domain: str) -> CompanyInfo:
    """Profile used for free mail domains and failed lookups."""
    return {
        "name": "your company",
        "domain": domain,
        "industry": "various industries",
        "insights": ["Many professionals are exploring AI automation to stay competitive"],
        "challenges": ["improving operational efficiency", "staying ahead of industry trends"],
        "source": "generic",
    }

def company_name_from_domain(domain: str) -> str:
    name = re.sub(r"\.(com|co|io|net|org)(\.[a-z]{2})?$", "", domain)
    return re.sub(r"[^a-zA-Z0-9]+", " ", name).strip() or domain

def pick_industry(domain: str) -> str:
    """Stable industry guess for a domain."""
    digest = hashlib.md5(domain.encode("utf-8")).hexdigest()
    return INDUSTRIES[int(digest, 16) % len(INDUSTRIES)]

# Global analyzer instance
analyzer = CompanyAnalyzer()

async def analyze_company_from_email(email: str) -> CompanyInfo:
    return await analyzer.analyze(email)
