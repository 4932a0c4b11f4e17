"""Static informational page content."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Page:
    title: str
    paragraphs: tuple[str, ...]
    features: tuple[tuple[str, str], ...] = ()


PAGES: dict[str, Page] = {
    "home": Page(
        title="Welcome to the Blood Bank System",
        paragraphs=(
            "This is a secure and efficient platform designed to manage and track "
            "blood donations and inventory in real-time. Our goal is to connect "
            "hospitals with the blood they need, when they need it, ensuring a quick "
            "and reliable supply.",
            "Navigate to the dashboard to view current inventory, or use the request "
            "and search features to find specific blood types.",
        ),
        features=(
            ("Real-time Dashboard", "View live inventory levels from all connected hospitals."),
            ("Request & Track", "Easily request blood and track the status of your order."),
            ("Efficient Search", "Quickly find specific blood types available across our network."),
        ),
    ),
    "about": Page(
        title="About Us",
        paragraphs=(
            "Our mission is to streamline the process of blood bank management through "
            "modern technology. We believe that every unit of blood is precious, and by "
            "providing a transparent and efficient system, we can help save lives.",
            "This platform was created to demonstrate how a centralized, real-time "
            "database can improve communication between blood banks and hospitals. "
            "All data is updated as soon as it changes, giving healthcare professionals "
            "the most accurate information available.",
            "We are dedicated to building a more resilient and responsive healthcare "
            "infrastructure, one feature at a time.",
        ),
    ),
    "contact": Page(
        title="Contact Us",
        paragraphs=(
            "Have a question about a request or a donation? Send us a message and "
            "our team will get back to you.",
        ),
    ),
}


def get_page(name: str) -> Page | None:
    return PAGES.get(name)
