from flask import current_app

from .models import DEFAULT_AUTHOR
from .services import PostService, current_store

SAMPLE_POSTS = [
    {
        'slug': 'power-of-sip',
        'title': 'The Power of SIP: How ₹5,000/Month Can Build a Crore',
        'excerpt': 'Discover how systematic investment plans leverage compounding to turn small monthly '
                   'investments into significant wealth over time.',
        'content': (
            'Systematic Investment Plans (SIP) are one of the most powerful tools for long-term wealth creation. '
            'When you invest a fixed amount regularly, you benefit from rupee cost averaging and the power of '
            'compounding.\n\n'
            'With just ₹5,000 per month invested in a diversified mutual fund earning 12% annually, you could '
            'accumulate over ₹80+ lakhs in 20 years. The key is to start early and stay consistent.\n\n'
            'Start your SIP journey today and watch your wealth grow systematically.'
        ),
        'cover_image': 'https://images.unsplash.com/photo-1611974789855-9c2a0a7236a3?w=800&auto=format&fit=crop',
    },
    {
        'slug': 'tax-saving-elss',
        'title': 'ELSS vs PPF vs FD: Which Tax Saving Option Is Best?',
        'excerpt': 'A comprehensive comparison of popular Section 80C investment options to help you make the '
                   'smartest tax-saving decision.',
        'content': (
            "When it comes to saving taxes under Section 80C, investors have multiple options. Let's compare the "
            'most popular choices:\n\n'
            'ELSS (Equity Linked Saving Scheme):\n- Highest growth potential\n- Shortest lock-in of 3 years\n'
            '- Good for long-term investors\n\n'
            'PPF (Public Provident Fund):\n- Guaranteed returns\n- Lock-in of 15 years\n- Safest option\n\n'
            'FD (Fixed Deposit):\n- Predictable returns\n- Lock-in as per choice\n- Low risk\n\n'
            'Choose based on your risk appetite and investment horizon.'
        ),
        'cover_image': 'https://images.unsplash.com/photo-1554224155-6726b3ff858f?w=800&auto=format&fit=crop',
    },
    {
        'slug': 'health-insurance-2024',
        'title': 'Health Insurance in 2024: A Complete Buying Guide',
        'excerpt': 'Everything you need to know about choosing the right health insurance plan for your family '
                   'in the current landscape.',
        'content': (
            "Health insurance is not a luxury but a necessity in today's world. With medical inflation rising "
            'every year, having comprehensive health coverage is crucial.\n\n'
            'Key factors to consider:\n1. Sum Insured - Should be at least ₹5 lakhs for individuals\n'
            '2. Coverage - OPD, pre-existing diseases, maternity\n'
            '3. Network Hospitals - Wide network ensures better access\n'
            '4. No-Claim Bonus - Additional cover for claim-free years\n'
            '5. Premium - Balance between affordability and coverage\n\n'
            "Invest in a good health insurance plan now to protect your family's financial health."
        ),
        'cover_image': 'https://images.unsplash.com/photo-1576091160399-112ba8d25d1d?w=800&auto=format&fit=crop',
    },
]


def seed_database():
    """Insert the sample posts whose slugs are not taken yet. Returns the number inserted."""
    store = current_store()
    posts = PostService(store)
    inserted = 0
    for sample in SAMPLE_POSTS:
        if store.find_one(posts.table, slug=sample['slug']):
            continue
        posts.create(dict(sample, author=DEFAULT_AUTHOR, published=True))
        inserted += 1
    if inserted:
        current_app.logger.info(f'Seeded {inserted} sample blog post(s).')
    return inserted
