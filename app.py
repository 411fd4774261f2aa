"""
Review Desk - Streamlit Dashboard
Status board, import and analytics views over the review store
Supports: Board View, Review Detail, Analytics View
"""
import streamlit as st
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import sys
from pathlib import Path
from typing import Dict, Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from review_desk import config
from review_desk.classify import ReviewClassifier
from review_desk.collect import integration_status
from review_desk.database import DatabaseManager, AnalyticsQueries
from review_desk.export import TEMPLATE_FILENAME, export_filename, reviews_to_csv, template_csv
from review_desk.importer import ReviewImporter
from review_desk.transformers import DATE_PRESETS, filter_reviews_df
from review_desk.utils import ReviewDeskError
from review_desk.workflow import WorkflowService

# ============================================================================
# CONFIGURATION & THEME
# ============================================================================

COLORS = {
    "green": "#0B6E4F",
    "teal": "#1F7A8C",
    "gray": "#5C7C89",
    "light_gray": "#E8ECEF",
    "red": "#D62728",
    "orange": "#FF7F0E",
    "yellow": "#FFD700",
    "white": "#FFFFFF",
    "text": "#20322F",
}

SENTIMENT_COLORS = {
    "positive": COLORS["green"],
    "negative": COLORS["red"],
    "neutral": COLORS["gray"],
}

SEVERITY_COLORS = {
    "low": COLORS["green"],
    "medium": COLORS["yellow"],
    "high": COLORS["orange"],
    "critical": COLORS["red"],
}

STATUS_LABELS = {
    "open": "Open",
    "in_progress": "In Progress",
    "resolved": "Resolved",
}


# ============================================================================
# PAGE CONFIG & STYLING
# ============================================================================

st.set_page_config(
    page_title="Review Desk",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="expanded"
)


def get_plotly_layout() -> dict:
    """Shared Plotly layout settings."""
    return dict(
        font=dict(family="Inter, Trebuchet MS, sans-serif", size=12, color=COLORS["text"]),
        paper_bgcolor=COLORS["white"],
        plot_bgcolor=COLORS["white"],
        margin=dict(l=50, r=30, t=60, b=50),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
        xaxis=dict(gridcolor=COLORS["light_gray"]),
        yaxis=dict(gridcolor=COLORS["light_gray"]),
    )


# ============================================================================
# SESSION STATE INITIALIZATION
# ============================================================================

def init_session_state():
    """Initialize all session state variables."""
    defaults = {
        "selected_review": None,
        "last_import": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


init_session_state()


# ============================================================================
# DATA ACCESS
# ============================================================================

@st.cache_resource
def get_db() -> DatabaseManager:
    db = DatabaseManager()
    db.initialize_schema()
    return db


def load_reviews(filters: Dict) -> pd.DataFrame:
    """Stored reviews with the sidebar filters applied, newest first."""
    df = get_db().get_reviews_df()
    if df.empty:
        return df
    return filter_reviews_df(df, **filters)


# ============================================================================
# CHARTS
# ============================================================================

def create_kpi_metrics(df: pd.DataFrame) -> None:
    """Create KPI metric cards."""
    col1, col2, col3, col4 = st.columns(4)

    with col1:
        st.metric("Total Reviews", f"{len(df):,}")
    with col2:
        st.metric("Open", f"{(df['status'] == 'open').sum():,}")
    with col3:
        urgent = df["severity"].isin(["high", "critical"]).sum()
        st.metric("Urgent", f"{urgent:,}")
    with col4:
        avg_rating = pd.to_numeric(df["rating"], errors="coerce").mean()
        st.metric("Avg Rating", f"{avg_rating:.2f}" if pd.notna(avg_rating) else "N/A")


def create_sentiment_pie(df: pd.DataFrame) -> go.Figure:
    """Create sentiment distribution pie chart."""
    counts = df["sentiment"].value_counts()
    fig = go.Figure(data=[go.Pie(
        labels=counts.index,
        values=counts.values,
        hole=0.4,
        marker=dict(colors=[SENTIMENT_COLORS.get(s, COLORS["gray"]) for s in counts.index]),
        textinfo="label+percent",
    )])
    fig.update_layout(**get_plotly_layout())
    fig.update_layout(title="<b>Sentiment Distribution</b>", showlegend=False, height=350)
    return fig


def create_severity_bar(df: pd.DataFrame) -> go.Figure:
    """Reviews per severity, split by marketplace."""
    counts = df.groupby(["severity", "marketplace"]).size().reset_index(name="reviews")
    fig = px.bar(
        counts,
        x="severity",
        y="reviews",
        color="marketplace",
        title="<b>Severity by Marketplace</b>",
        category_orders={"severity": config.SEVERITIES},
    )
    fig.update_layout(**get_plotly_layout())
    fig.update_layout(height=350, xaxis_title="", yaxis_title="Reviews")
    return fig


def create_temporal_chart(df: pd.DataFrame) -> Optional[go.Figure]:
    """Monthly review volume by sentiment (reported creation date)."""
    created = pd.to_datetime(df["created_at"], errors="coerce")
    if created.isna().all():
        return None
    monthly = (
        df.assign(month=created.dt.to_period("M").dt.to_timestamp())
        .groupby(["month", "sentiment"]).size().reset_index(name="reviews")
    )
    fig = px.line(
        monthly,
        x="month",
        y="reviews",
        color="sentiment",
        color_discrete_map=SENTIMENT_COLORS,
        markers=True,
        title="<b>Reviews per Month</b>",
    )
    fig.update_layout(**get_plotly_layout())
    fig.update_layout(height=350, xaxis_title="", yaxis_title="Reviews")
    return fig


# ============================================================================
# SIDEBAR
# ============================================================================

def render_import_section():
    st.sidebar.markdown("### Import Reviews")
    marketplace = st.sidebar.selectbox("Marketplace", config.IMPORTABLE_MARKETPLACES)
    uploaded = st.sidebar.file_uploader("CSV or JSON file", type=["csv", "json"])
    classify = st.sidebar.checkbox("AI classification", value=config.is_configured("OPENROUTER_API_KEY"))

    if uploaded is not None and st.sidebar.button("Import", use_container_width=True):
        importer = ReviewImporter(get_db(), classify=classify)
        try:
            result = importer.import_file(uploaded.name, uploaded.getvalue(), marketplace)
        except ReviewDeskError as e:
            st.sidebar.error(str(e))
        else:
            st.session_state.last_import = result
            st.sidebar.success(f"Imported {result.imported}, skipped {result.skipped}")

    st.sidebar.download_button(
        "Download CSV Template",
        data=template_csv(),
        file_name=TEMPLATE_FILENAME,
        mime="text/csv",
        use_container_width=True,
    )

    status = integration_status()
    if status["axesso"] or status["apify"] or status["walmart"]:
        with st.sidebar.expander("Marketplace API", expanded=False):
            api_market = st.selectbox("Source", ["Amazon", "Walmart"])
            product = st.text_input("Product URL / ASIN / id")
            full_sync = st.checkbox("Full sync")
            if product and st.button("Fetch Reviews"):
                importer = ReviewImporter(get_db(), classify=classify)
                try:
                    result = importer.import_from_marketplace(api_market, product, full_sync=full_sync)
                except ReviewDeskError as e:
                    st.error(str(e))
                else:
                    st.session_state.last_import = result
                    st.success(
                        f"{result.product_name or product}: imported {result.imported}, "
                        f"skipped {result.skipped}"
                    )


def render_filters() -> Dict:
    st.sidebar.markdown("### Filters")
    search = st.sidebar.text_input("Search")
    marketplace = st.sidebar.multiselect("Marketplace", config.MARKETPLACES, key="filter_marketplace")
    sentiment = st.sidebar.multiselect("Sentiment", config.SENTIMENTS)
    severity = st.sidebar.multiselect("Severity", config.SEVERITIES)
    min_rating, max_rating = st.sidebar.slider(
        "Rating", config.MIN_RATING, config.MAX_RATING, (config.MIN_RATING, config.MAX_RATING)
    )
    date_range = st.sidebar.selectbox("Date range", ["all"] + list(DATE_PRESETS))

    rating_filtered = (min_rating, max_rating) != (config.MIN_RATING, config.MAX_RATING)
    return {
        "search": search or None,
        "marketplace": marketplace or None,
        "sentiment": sentiment or None,
        "severity": severity or None,
        "min_rating": min_rating if rating_filtered else None,
        "max_rating": max_rating if rating_filtered else None,
        "date_range": date_range,
    }


def render_sidebar() -> Dict:
    st.sidebar.markdown("## Review Desk")
    render_import_section()
    st.sidebar.markdown("---")
    return render_filters()


# ============================================================================
# PAGES
# ============================================================================

def render_card(row: pd.Series, workflow: WorkflowService):
    with st.container(border=True):
        st.markdown(f"**{row['title']}**")
        st.caption(
            f"{row['marketplace']} · {row['customer_name']} · "
            f"{pd.to_datetime(row['created_at']).strftime('%Y-%m-%d')}"
        )
        badge = SEVERITY_COLORS.get(row["severity"], COLORS["gray"])
        st.markdown(
            f"<span style='color:{badge}'>● {row['severity']}</span> · {row['sentiment']} · {row['category']}",
            unsafe_allow_html=True,
        )
        target = st.selectbox(
            "Move to",
            config.STATUSES,
            index=config.STATUSES.index(row["status"]),
            format_func=STATUS_LABELS.get,
            key=f"status_{row['id']}",
            label_visibility="collapsed",
        )
        if target != row["status"]:
            workflow.transition(row["id"], target)
            st.rerun()
        if st.button("Details", key=f"open_{row['id']}"):
            st.session_state.selected_review = row["id"]


def page_board_view(df: pd.DataFrame):
    """Kanban-style columns, one per workflow status."""
    if df.empty:
        st.info("No reviews yet. Import a file from the sidebar.")
        return

    create_kpi_metrics(df)
    st.download_button(
        "Export filtered reviews",
        data=reviews_to_csv(df),
        file_name=export_filename(),
        mime="text/csv",
    )

    workflow = WorkflowService(get_db())
    columns = st.columns(len(config.STATUSES))
    for col, status in zip(columns, config.STATUSES):
        subset = df[df["status"] == status]
        with col:
            st.markdown(f"### {STATUS_LABELS[status]} ({len(subset)})")
            for _, row in subset.iterrows():
                render_card(row, workflow)


def page_review_detail():
    review_id = st.session_state.selected_review
    if not review_id:
        st.info("Select a review on the board to see its details.")
        return

    db = get_db()
    try:
        review = db.get_review(review_id)
    except ReviewDeskError as e:
        st.error(str(e))
        return

    st.markdown(f"## {review.title}")
    st.caption(f"{review.marketplace} · {review.customer_name} · {review.display_product or 'no product'}")
    if review.rating:
        st.markdown("★" * review.rating + "☆" * (config.MAX_RATING - review.rating))
    st.write(review.content)

    details = review.analysis_details
    if details:
        with st.expander("AI analysis", expanded=True):
            st.write(details.get("reasoning", ""))
            for label, key in [("Issues", "specific_issues"), ("Positives", "positive_aspects"),
                               ("Actions", "recommended_actions")]:
                if details.get(key):
                    st.markdown(f"**{label}:** " + "; ".join(details[key]))

    reply = st.text_area("Suggested reply", value=review.ai_suggested_reply or "", height=150)
    col1, col2 = st.columns(2)
    with col1:
        if st.button("Save reply") and reply.strip():
            db.update_review_reply(review.id, reply.strip())
            st.success("Reply saved")
    with col2:
        if st.button("Draft with AI"):
            try:
                WorkflowService(db).draft_reply(review.id, ReviewClassifier())
            except ReviewDeskError as e:
                st.error(str(e))
            else:
                st.rerun()


def page_analytics_view(df: pd.DataFrame):
    if df.empty:
        st.info("No reviews to analyze.")
        return

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(create_sentiment_pie(df), use_container_width=True)
    with col2:
        st.plotly_chart(create_severity_bar(df), use_container_width=True)

    fig = create_temporal_chart(df)
    if fig is not None:
        st.plotly_chart(fig, use_container_width=True)

    st.markdown("### Marketplaces")
    st.dataframe(AnalyticsQueries(get_db()).get_marketplace_stats(), use_container_width=True)


# ============================================================================
# MAIN APP
# ============================================================================

def main():
    """Main application entry point."""
    filters = render_sidebar()
    df = load_reviews(filters)

    tabs = st.tabs(["Board View", "Review Detail", "Analytics View"])

    with tabs[0]:
        page_board_view(df)

    with tabs[1]:
        page_review_detail()

    with tabs[2]:
        page_analytics_view(df)


if __name__ == "__main__":
    main()
