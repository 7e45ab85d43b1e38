"""
Lead model: one row per business record, keyed by id and unique on place_id.

pipeline_status marks which stage currently owns the row; pipeline_status_at
records when it was set so the reconciliation sweep can find stuck leads.
"""
import uuid

from sqlalchemy import Column, Integer, Float, Text, Boolean, DateTime, JSON, Index
from sqlalchemy.sql import func

from leadpipe.database import Base


def _new_id():
    return str(uuid.uuid4())


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True, default=_new_id)
    place_id = Column(Text, unique=True, nullable=True)
    name = Column(Text, default='')
    business_type = Column(Text, nullable=True)
    city = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    website = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    rating = Column(Float, nullable=True)
    review_count = Column(Integer, nullable=True)

    # Pipeline ownership
    pipeline_status = Column(Text, nullable=False, default='idle')
    pipeline_status_at = Column(DateTime(timezone=True), nullable=True)

    # Enrichment output
    emails = Column(JSON, default=list)
    phones = Column(JSON, default=list)
    social = Column(JSON, default=dict)
    contact_page_url = Column(Text, nullable=True)
    team_members = Column(JSON, default=list)
    headcount_estimate = Column(Integer, nullable=True)
    founded_year = Column(Integer, nullable=True)
    snippets = Column(JSON, default=list)
    tagline = Column(Text, nullable=True)
    web_scraped_at = Column(DateTime(timezone=True), nullable=True)
    scrape_markdown_key = Column(Text, nullable=True)
    scrape_pages_prefix = Column(Text, nullable=True)
    scrape_error = Column(Text, nullable=True)

    # Scoring output
    controlling_owner = Column(Text, nullable=True)
    ownership_type = Column(Text, nullable=True)
    is_excluded = Column(Boolean, default=False)
    exclusion_reason = Column(Text, nullable=True)
    business_quality_score = Column(Integer, nullable=True)
    exit_readiness_score = Column(Integer, nullable=True)
    priority_score = Column(Integer, nullable=True)
    priority_tier = Column(Integer, nullable=True)
    scoring_rationale = Column(Text, nullable=True)
    supporting_evidence = Column(JSON, nullable=True)
    facts_key = Column(Text, nullable=True)
    scored_at = Column(DateTime(timezone=True), nullable=True)
    scoring_error = Column(Text, nullable=True)

    # Cohort ranks (refreshed globally after each scoring batch)
    quality_percentile_by_type = Column(Float, nullable=True)
    quality_percentile_by_city = Column(Float, nullable=True)
    exit_percentile_by_type = Column(Float, nullable=True)
    exit_percentile_by_city = Column(Float, nullable=True)
    composite_score = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('ix_leads_pipeline_status', 'pipeline_status'),
        Index('ix_leads_business_type', 'business_type'),
    )

    def basic_info(self) -> dict:
        """Identity fields sent with the extraction prompt."""
        return {
            'name': self.name,
            'business_type': self.business_type,
            'city': self.city,
            'state': self.state,
        }

    def scoring_payload(self) -> dict:
        """Lead metadata sent with the scoring prompt."""
        return {
            **self.basic_info(),
            'phone': self.phone,
            'website': self.website,
            'rating': self.rating,
            'review_count': self.review_count,
            'emails': self.emails or [],
            'phones': self.phones or [],
            'social': self.social or {},
            'contact_page_url': self.contact_page_url,
            'headcount_estimate': self.headcount_estimate,
            'founded_year': self.founded_year,
            'tagline': self.tagline,
        }
