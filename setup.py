from setuptools import setup, find_packages


setup(
    name="clinic-crm",
    version="1.0.0",
    description="Clinic CRM - lead to customer conversion and no-show follow-up",
    packages=find_packages(where=".", include=["clinic_crm*"]),
    install_requires=[
        "flask>=3.1.2",
        "flask-cors>=6.0.1",
        "flask-sqlalchemy>=3.1.1",
        "psycopg2-binary>=2.9.10",
        "pydantic>=2.7",
        "requests>=2.32.5",
        "sqlalchemy>=2.0.43",
        "werkzeug>=3.0",
    ],
    extras_require={
        "test": ["pytest>=8.0"],
    },
    python_requires=">=3.11",
)
