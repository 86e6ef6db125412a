"""
SQL Injection Detection Module

Error-based only: a quote payload that surfaces a database error message.
"""

from typing import List, Optional
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.core.urls import with_param

logger = logging.getLogger(__name__)

SQLI_PAYLOAD = "'"
SQLI_SIGNATURE = 'tick_only'
SQLI_AGGRESSIVE_PAYLOAD = "'\")--"
SQLI_AGGRESSIVE_SIGNATURE = 'tick_quote_comment'

# Vendor error strings, matched case-insensitively
SQL_ERROR_SIGNATURES = [
    'you have an error in your sql syntax',
    'unclosed quotation mark after the character string',
    'sqlstate',
    'syntax error near',
    'warning: mysql',
    'ORA-0',
    'SQLiteException',
    'PG::SyntaxError',
    'mysql_fetch_',
    'System.Data.SqlClient',
    'org.hibernate.exception',
    'MySqlException',
]


def find_sql_error(body: str) -> Optional[str]:
    """First SQL error signature found in the body (as it appears there)."""
    if not body:
        return None
    lower = body.lower()
    for signature in SQL_ERROR_SIGNATURES:
        idx = lower.find(signature.lower())
        if idx >= 0:
            return body[idx:idx + len(signature)]
    return None


class SQLInjectionModule(BaseModule):
    """SQL error disclosure after quote injection."""

    name = "SQL Injection Scanner"
    description = "Detects error-based SQL injection"
    issue_type = IssueType.SQLI_ERROR
    severity = Severity.HIGH
    confidence = 0.85

    async def run(self, client: HttpClient, url: str, plan) -> List[VulnResult]:
        probe_url = with_param(url, plan.param, plan.payload)
        resp = await client.get(probe_url)
        hit = find_sql_error(resp.body)
        if hit is None:
            return []
        return [self.create_result(
            url=url,
            description=f"Database error returned after injecting into '{plan.param}'.",
            request_url=probe_url,
            body=resp.body,
            token=hit,
            parameter=plan.param,
            payload_signature=plan.signature,
        )]


# Module interface functions
async def test(client, url, plan) -> List[VulnResult]:
    """Active test interface."""
    return await SQLInjectionModule().run(client, url, plan)
