"""
Keyword lists for the pattern-based resume extractor.

Used when the model reply cannot be decoded, and to top up AI results that
came back with too few skills.
"""
from typing import Dict, List

SKILL_PATTERNS: Dict[str, List[str]] = {
    "technical": [
        "JavaScript", "TypeScript", "Python", "Java", "C++", "C#", "React", "Node.js", "SQL",
        "HTML", "CSS", "AWS", "Azure", "GCP", "Docker", "Kubernetes", "Git", "Jenkins", "MongoDB",
        "PostgreSQL", "GraphQL", "Machine Learning", "AI", "Data Science", "Analytics", "Excel",
        "Power BI", "Tableau",
    ],
    "business": [
        "Project Management", "Leadership", "Strategy", "Business Development", "Sales",
        "Marketing", "Customer Service", "Account Management", "Budget Management",
        "Process Improvement", "Change Management", "Strategic Planning", "Negotiation",
    ],
    "soft": [
        "Communication", "Teamwork", "Problem Solving", "Critical Thinking", "Adaptability",
        "Time Management", "Attention to Detail", "Creativity", "Initiative", "Collaboration",
    ],
    "industry": [
        "Healthcare", "Finance", "Technology", "Education", "Retail", "Manufacturing",
        "Consulting", "Real Estate", "Insurance", "Telecommunications", "Government",
    ],
}

# Title words that mark a line as a job title
ROLE_KEYWORDS = [
    "engineer", "developer", "manager", "analyst", "designer", "scientist", "consultant",
    "specialist", "coordinator", "director", "administrator", "architect", "lead", "officer",
    "accountant", "writer", "assistant", "intern",
]

# Returned by models that ignored the instructions and echoed the template
PLACEHOLDER_NAMES = {"full name", "actual candidate name from resume", "candidate name"}
PLACEHOLDER_EMAILS = {"email@domain.com", "email@example.com", "actual email if found"}

COUNTRIES = [
    "Nigeria", "Ghana", "Kenya", "South Africa", "Egypt", "Indonesia", "Philippines", "Vietnam",
    "India", "Malaysia", "Brazil", "Mexico", "Argentina", "Colombia", "Chile", "Peru",
]
