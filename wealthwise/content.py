"""Static marketing copy served to the public site."""

PAGES = {
    'home': {
        'title': 'WealthWise',
        'tagline': 'AMFI Registered Mutual Fund Distributor',
        'sections': [
            {
                'heading': 'Mutual Funds',
                'body': 'Diversified mutual fund solutions including SIP, lump sum, and goal-based investments '
                        'across equity, debt, and hybrid categories.',
            },
            {
                'heading': 'Goal Planning',
                'body': 'Structured planning to help you reach milestones such as retirement, education and a home.',
            },
            {
                'heading': 'Family Wealth',
                'body': 'Wealth management for your entire family with strategies for every life stage.',
            },
            {
                'heading': 'Simple. Transparent. Effective.',
                'body': 'Book a free consultation, share your goals and risk appetite, and start investing with '
                        'a plan that suits you.',
            },
        ],
    },
    'about': {
        'title': 'About Us',
        'tagline': 'Mutual fund distributors committed to disciplined investing.',
        'sections': [
            {
                'heading': 'Integrity',
                'body': 'We prioritize your interests above all, with risk profiling and a suitability assessment '
                        'before every recommendation.',
            },
            {
                'heading': 'Transparency',
                'body': 'We are open about our role: mutual fund distribution only.',
            },
            {
                'heading': 'Compliance',
                'body': 'AMFI-registered operations with documented risk profiling and suitability.',
            },
        ],
    },
    'products': {
        'title': 'Products',
        'tagline': 'What we offer and where our scope ends.',
        'sections': [
            {
                'heading': 'Mutual Fund Distribution',
                'body': 'We help investors select suitable mutual fund schemes based on their risk profile and '
                        'financial goals.',
            },
            {
                'heading': 'Our Scope & Limitations',
                'body': 'As an AMFI-Registered Mutual Fund Distributor, our services are limited to mutual fund '
                        'distribution.',
            },
        ],
    },
    'mutual-funds': {
        'title': 'Mutual Funds',
        'tagline': 'Fund categories for every horizon and risk appetite.',
        'sections': [
            {
                'heading': 'Equity Funds',
                'body': 'Long-term wealth creation through diversified stock portfolios. Suited to a 5+ year horizon.',
            },
            {
                'heading': 'Debt Funds',
                'body': 'Stable returns with lower risk for short to medium-term goals and capital preservation.',
            },
            {
                'heading': 'Hybrid Funds',
                'body': 'Balanced allocation between equity and debt for a moderate risk appetite.',
            },
            {
                'heading': 'ELSS (Tax Saving)',
                'body': 'Save taxes under Section 80C while building wealth, with a lock-in of 3 years.',
            },
        ],
    },
    'insurance': {
        'title': 'Insurance',
        'tagline': 'Mutual Fund Only',
        'sections': [
            {
                'heading': 'Important Regulatory Notice',
                'body': 'We do not distribute insurance products. Please consult a licensed insurance advisor for '
                        'life and health cover.',
            },
        ],
    },
    'tax-guide': {
        'title': 'Tax Guide for Mutual Fund Investors',
        'tagline': 'Tax rates and key concepts for FY 2024-25.',
        'sections': [
            {
                'heading': 'Equity-Oriented Funds',
                'body': 'Short and long-term capital gains are taxed at the rates that apply to equity funds.',
            },
            {
                'heading': 'Non-Equity / Debt-Oriented Funds',
                'body': 'Gains are taxed at your applicable income tax slab rate.',
            },
            {
                'heading': 'Tax Loss Harvesting',
                'body': 'Booking losses can offset gains in the same year. Review with your tax advisor.',
            },
            {
                'heading': 'Disclaimer',
                'body': 'This guide is for information only and is not tax advice.',
            },
        ],
    },
}


def list_pages():
    return [{'slug': slug, 'title': page['title'], 'tagline': page['tagline']} for slug, page in PAGES.items()]


def get_page(slug):
    page = PAGES.get(slug)
    if page is None:
        return None
    return dict(page, slug=slug)
