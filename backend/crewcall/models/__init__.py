from crewcall.models.company import Company
from crewcall.models.associate import Associate
from crewcall.models.job import Job
from crewcall.models.job_assignment import JobAssignment
from crewcall.models.opt_info import OptInfo

__all__ = [
    "Company",
    "Associate",
    "Job",
    "JobAssignment",
    "OptInfo",
]
