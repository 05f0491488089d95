from typing import Dict, Any, Iterable, Optional

from graph.state import ConversationState

DEFAULT_GREETING = "Hi! I'm here to help you explore AI capabilities. What would you like to work on today?"

def build_intelligence_context(state: ConversationState, capabilities: Iterable[str] = ()) -> Dict[str, Any]:
    """Lead/company profile served to the chat UI for personalization."""
    context: Dict[str, Any] = {
        "lead": {"email": state.get("email") or "", "name": state.get("name") or ""},
        "capabilities": sorted(set(capabilities)),
    }

    company = state.get("company_info")
    if company and company.get("source") != "generic":
        domain = company.get("domain", "")
        context["company"] = {
            "name": company.get("name", ""),
            "size": "",
            "domain": domain,
            "summary": (company.get("insights") or [""])[0],
            "website": f"https://{domain}" if domain else "",
            "industry": company.get("industry", ""),
            "linkedin": "",
        }

    if state.get("name"):
        context["person"] = {
            "role": "",
            "company": company.get("name", "") if company else "",
            "fullName": state["name"],
            "seniority": "",
            "profileUrl": "",
        }

    return context

def generate_personalized_greeting(ctx: Optional[Dict[str, Any]]) -> str:
    if not ctx:
        return DEFAULT_GREETING

    company = ctx.get("company")
    person = ctx.get("person")
    role = ctx.get("role")
    role_confidence = ctx.get("roleConfidence") or 0
    industry = (company.get("industry") or "").lower() if company else ""
    industry = industry or "business"

    if role_confidence >= 0.7 and company and person:
        return (f"Hi {person['fullName']} at {company['name']}! As {role}, I can help you explore "
                f"AI capabilities for your {industry}. What would you like to work on today?")
    if company and person:
        return (f"Hi {person['fullName']} at {company['name']}! I can help you explore "
                f"AI capabilities for your {industry}. What would you like to work on today?")
    if person:
        return (f"Hi {person['fullName']}! I'm here to help you explore AI capabilities. "
                "What would you like to work on today?")
    return DEFAULT_GREETING
