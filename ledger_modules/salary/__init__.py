"""Coach commission and monthly salary engine."""

from ledger_modules.salary.models import CoachSalary, SalaryRateConfig, SalaryStatus
from ledger_modules.salary.service import SalaryService

__all__ = ["CoachSalary", "SalaryRateConfig", "SalaryService", "SalaryStatus"]
