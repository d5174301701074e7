"""Allow running with: python -m insurance_sales"""

from insurance_sales.cli.main import app

if __name__ == "__main__":
    app()
