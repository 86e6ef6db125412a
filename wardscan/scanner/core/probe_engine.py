"""
Active Probe Engine

Executes ProbePlans with read-only methods (GET / HEAD / OPTIONS) and turns
confirmed responses into findings.
"""

from typing import Dict, List, Optional, Set
import logging

from wardscan.scanner.core.budget import BudgetGate
from wardscan.scanner.core.features import Probe
from wardscan.scanner.core.planner import PlanKind, ProbePlan
from wardscan.scanner.core.ratelimit import RateLimiter
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.modules.base import BaseModule, IssueType, VulnResult
from wardscan.scanner.modules.cors import CORSModule
from wardscan.scanner.modules.lfi import LFIModule
from wardscan.scanner.modules.mixed_content import MixedContentModule
from wardscan.scanner.modules.open_redirect import OpenRedirectModule
from wardscan.scanner.modules.sqli import SQLInjectionModule
from wardscan.scanner.modules.ssti import SSTIModule
from wardscan.scanner.modules.xss import XSSModule

logger = logging.getLogger(__name__)


def default_modules() -> Dict[Probe, BaseModule]:
    return {
        Probe.OPEN_REDIRECT: OpenRedirectModule(),
        Probe.XSS_REFLECTED: XSSModule(),
        Probe.SQLI_ERROR: SQLInjectionModule(),
        Probe.PATH_TRAVERSAL: LFIModule(),
        Probe.SSTI: SSTIModule(),
        Probe.CORS: CORSModule(),
        Probe.MIXED_CONTENT: MixedContentModule(),
    }


class ProbeEngine:
    """
    Runs plans one by one for a URL.

    Each plan is isolated: an exception drops that plan's contribution only.
    HEADER plans report at most one finding per issue type per URL.
    """

    def __init__(
            self,
            client: HttpClient,
            budget: Optional[BudgetGate] = None,
            limiter: Optional[RateLimiter] = None,
            modules: Optional[Dict[Probe, BaseModule]] = None
    ):
        """
        Args:
            client: HTTP client used for probe requests
            budget: Run-wide probe budget (unbounded when None)
            limiter: Active-probe rate limiter
            modules: Probe implementations keyed by category
        """
        self.client = client
        self.budget = budget
        self.limiter = limiter
        self.modules = default_modules() if modules is None else modules
        self.executed = 0

    async def execute(self, url: str, plans: List[ProbePlan]) -> List[VulnResult]:
        """
        Args:
            url: Page URL under test
            plans: Plans from the planner

        Returns:
            Findings confirmed by the plans
        """
        results: List[VulnResult] = []
        header_types: Set[IssueType] = set()

        for plan in plans:
            if plan.kind == PlanKind.HEADER and self._header_reported(plan, header_types):
                continue

            if self.budget is not None and not self.budget.try_consume():
                logger.info(f"Active probe budget exhausted; skipping remaining plans for {url}")
                break

            module = self.modules.get(plan.probe)
            if module is None:
                continue

            if self.limiter is not None:
                await self.limiter.acquire()

            try:
                found = await module.run(self.client, url, plan)
            except Exception as e:
                logger.warning(f"Probe {plan.probe.value}/{plan.signature} failed on {url} "
                               f"(param={plan.param_key}): {e}")
                continue
            finally:
                self.executed += 1

            if plan.kind == PlanKind.HEADER:
                for result in found:
                    if result.issue_type not in header_types:
                        header_types.add(result.issue_type)
                        results.append(result)
            else:
                results.extend(found)

        return results

    def _header_reported(self, plan: ProbePlan, header_types: Set[IssueType]) -> bool:
        module = self.modules.get(plan.probe)
        return module is not None and module.issue_type in header_types
