import time
import asyncio
import pandas as pd
from io import StringIO
import streamlit as st

import config
from models.models import MedicineQuery
from ranking import delivery_time_value, filter_by_price_range, summarize
from search import batch_search, search_medicine_prices

# --- PAGE CONFIG ---
st.set_page_config(page_title="Med Price Scout", page_icon="💊", layout="wide")

# Custom CSS for high-contrast dashboard elements
st.markdown("""
    <style>
    .main { background-color: #f4f7f6; }
    /* Custom Card Design */
    .metric-card {
        background-color: white;
        padding: 20px;
        border-radius: 12px;
        border-top: 5px solid #1E88E5;
        box-shadow: 0 4px 6px rgba(0,0,0,0.1);
        text-align: center;
    }
    .metric-label { font-size: 0.9rem; color: #555; font-weight: 600; text-transform: uppercase; }
    .metric-value { font-size: 1.4rem; color: #111; font-weight: 800; }
    .metric-sub { font-size: 0.85rem; color: #777; }
    </style>
    """, unsafe_allow_html=True)


# Helper function for custom metric cards
def render_custom_metric(label, value, sub="", border_color="#1E88E5"):
    st.markdown(f"""
        <div class="metric-card" style="border-top-color: {border_color};">
            <div class="metric-label">{label}</div>
            <div class="metric-value">{value}</div>
            <div class="metric-sub">{sub}</div>
        </div>
    """, unsafe_allow_html=True)


def quotes_to_frame(quotes):
    return pd.DataFrame([{
        "Pharmacy": q.name,
        "Item": q.item,
        "Price": float(q.price) if q.price is not None else None,
        "Delivery": float(q.delivery_charge) if q.delivery_charge is not None else None,
        "Total": float(q.final_charge) if q.final_charge is not None else None,
        "Delivery Time": q.delivery_time,
        "Location": q.location,
        "URL": q.link,
    } for q in quotes])


def run_search(query):
    with st.spinner(f"Comparing prices for {query.name}..."):
        st.session_state.outcome = asyncio.run(search_medicine_prices(query))
    st.session_state.last_query = query


st.title("💊 Medicine Price Scout")
st.divider()

tab_single, tab_batch = st.tabs(["🔍 Medicine Search", "📁 CSV Batch Processing"])

# --- TAB 1: SINGLE SEARCH ---
with tab_single:
    c_name, c_pack, c_pin = st.columns([3, 1, 1])
    with c_name:
        name_input = st.text_input("Medicine:", placeholder="e.g. Paracetamol 500mg")
    with c_pack:
        pack_input = st.text_input("Pack size:", placeholder="e.g. 10")
    with c_pin:
        pin_input = st.text_input("Pin code:", value=config.DEFAULT_PIN)

    if st.button("Compare Prices", type="primary") and name_input and pack_input and pin_input:
        run_search(MedicineQuery(name=name_input, pack=pack_input, pin=pin_input))

    outcome = st.session_state.get("outcome")

    if outcome is not None and not outcome.ok:
        # Error panel: no partial results are shown for a failed search.
        st.error(outcome.error)
        if st.button("🔄 Retry"):
            run_search(st.session_state.last_query)
            st.rerun()

    elif outcome is not None:
        quotes = outcome.quotes
        if not quotes:
            st.info("No pharmacy returned a price for this medicine.")
        else:
            picks = summarize(quotes)
            c1, c2, c3, c4 = st.columns(4)
            with c1: render_custom_metric("Offers", len(quotes), outcome.query.name, "#757575")
            with c2:
                q = picks["cheapest"]
                render_custom_metric("Cheapest", f"₹{q.final_charge}", q.name, "#43A047")
            with c3:
                q = picks["fastest"]
                render_custom_metric("Fastest", q.delivery_time or "-", q.name, "#FB8C00")
            with c4:
                q = picks["best"]
                render_custom_metric("Best Value", f"₹{q.final_charge}", f"{q.name} · {q.delivery_time}", "#1E88E5")

            low, high = st.slider("Price range (₹)", 0, 5000, (0, 5000))
            visible = filter_by_price_range(quotes, low, high)

            df_quotes = quotes_to_frame(visible)
            if not df_quotes.empty:
                df_quotes["_days"] = [delivery_time_value(q.delivery_time) for q in visible]
                df_quotes = df_quotes.sort_values(["Total", "_days"], kind="stable").drop(columns="_days")

            st.markdown("### 📋 Offers")
            st.dataframe(
                df_quotes,
                column_config={
                    "Price": st.column_config.NumberColumn(format="₹%.2f"),
                    "Delivery": st.column_config.NumberColumn(format="₹%.2f"),
                    "Total": st.column_config.NumberColumn(format="₹%.2f"),
                    "URL": st.column_config.LinkColumn(),
                },
                width='stretch', hide_index=True
            )

# --- TAB 2: BATCH PROCESSING ---
with tab_batch:
    st.markdown("### 📄 Upload & Manage Batch")
    uploaded_file = st.file_uploader("Upload CSV (name, pack, optional pin)", type=['csv'])

    if uploaded_file is not None:
        if 'medicine_list' not in st.session_state:
            try:
                content = uploaded_file.read().decode('utf-8')
                df_upload = pd.read_csv(StringIO(content), dtype=str)

                if {'name', 'pack'} <= set(df_upload.columns):
                    if 'pin' not in df_upload.columns:
                        df_upload['pin'] = config.DEFAULT_PIN
                    df_upload['pin'] = df_upload['pin'].fillna(config.DEFAULT_PIN)
                    st.session_state.medicine_list = df_upload[['name', 'pack', 'pin']].dropna()
                else:
                    st.error("❌ CSV must contain 'name' and 'pack' columns")
                    st.stop()
            except Exception as e:
                st.error(f"Error: {e}")

        if 'medicine_list' in st.session_state:
            edited_df = st.data_editor(st.session_state.medicine_list, width='stretch', num_rows="dynamic", key="medicine_editor")
            st.session_state.medicine_list = edited_df

            if st.button("🚀 Start Batch Search", type="primary"):
                queries = [
                    MedicineQuery(name=row['name'], pack=row['pack'], pin=row['pin'])
                    for _, row in edited_df.dropna().iterrows()
                ]
                start_time = time.time()
                with st.spinner(f"Searching {len(queries)} medicines..."):
                    outcomes = asyncio.run(batch_search(queries))
                elapsed_time = time.time() - start_time

                rows = []
                for outcome in outcomes:
                    picks = summarize(outcome.quotes)
                    cheapest, best = picks['cheapest'], picks['best']
                    rows.append({
                        'Medicine': outcome.query.name,
                        'Pack': outcome.query.pack,
                        'Offers': len(outcome.quotes),
                        'Cheapest': float(cheapest.final_charge) if cheapest and cheapest.final_charge is not None else None,
                        'Cheapest Pharmacy': cheapest.name if cheapest else None,
                        'Best Value Pharmacy': best.name if best else None,
                        'Error': outcome.error,
                    })

                successful_count = sum(1 for o in outcomes if o.ok and o.quotes)
                success_rate = (successful_count / len(outcomes) * 100) if outcomes else 0

                st.divider()
                st.subheader("📊 Processing Insights")
                c1, c2, c3, c4 = st.columns(4)
                with c1: render_custom_metric("Total Items", len(outcomes), border_color="#1E88E5")
                with c2: render_custom_metric("Items Priced", successful_count, border_color="#43A047")
                with c3:
                    rate_color = "#43A047" if success_rate > 80 else "#FB8C00"
                    render_custom_metric("Success Rate", f"{success_rate:.1f}%", border_color=rate_color)
                with c4: render_custom_metric("Time Taken", f"{elapsed_time:.1f}s", border_color="#757575")

                df_final = pd.DataFrame(rows)
                st.markdown("### 📋 Comparative Results")
                st.dataframe(
                    df_final.style.format(precision=2, na_rep="-", subset=['Cheapest']),
                    width='stretch'
                )

                st.download_button("📥 Export Results", df_final.to_csv(index=False), "results.csv", "text/csv")
