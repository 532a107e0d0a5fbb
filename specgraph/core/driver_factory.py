"""
Driver Factory - WebDriver creation for generated test runs.
"""

from typing import Optional
from selenium import webdriver
from selenium.webdriver.chrome.options import Options as ChromeOptions

WebDriverType = webdriver.Chrome


def create_driver(
    headless: bool = True,
    profile_path: Optional[str] = None,
    window_size: str = "1280,900",
    page_load_timeout: Optional[int] = None,
) -> WebDriverType:
    """
    Create a Chrome WebDriver for running generated steps.

    Args:
        headless: Run browser in headless mode
        profile_path: Path to browser profile for session persistence
        window_size: Initial window size as ``width,height``
        page_load_timeout: Seconds before a navigation is abandoned

    Example:
        >>> driver = create_driver(headless=True)
        >>> driver.get("http://localhost:3000/login")
    """
    options = ChromeOptions()

    if headless:
        options.add_argument("--headless=new")

    if profile_path:
        options.add_argument(f"--user-data-dir={profile_path}")

    options.add_argument(f"--window-size={window_size}")
    options.add_argument("--disable-extensions")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--disable-gpu")

    driver = webdriver.Chrome(options=options)
    if page_load_timeout:
        driver.set_page_load_timeout(page_load_timeout)
    return driver
